import math

ITEMS_PER_PAGE = 10


def total_pages_for(total_count: int, page_size: int = ITEMS_PER_PAGE) -> int:
    """Number of pages needed for total_count rows; 0 rows means 0 pages."""
    return math.ceil(max(total_count, 0) / page_size)


class Pagination:
    """
    Page cursor over a result set whose size is fed in from outside.

    current_page is the only stored state besides total_count; every other
    figure is derived on read. Navigation methods return True when the page
    actually moved so the owner can trigger its side effects exactly once.
    """

    def __init__(self, page_size: int = ITEMS_PER_PAGE):
        self.page_size = page_size
        self.current_page = 1
        self.total_count = 0

    @property
    def total_pages(self) -> int:
        return total_pages_for(self.total_count, self.page_size)

    @property
    def last_page(self) -> int:
        return max(1, self.total_pages)

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1

    def update_total(self, total_count: int) -> None:
        self.total_count = max(total_count, 0)

    def next_page(self) -> bool:
        if not self.has_next_page:
            return False
        self.current_page += 1
        return True

    def prev_page(self) -> bool:
        if not self.has_prev_page:
            return False
        self.current_page -= 1
        return True

    def go_to_page(self, page: int) -> bool:
        """Jump to page, clamped into [1, last_page]."""
        return self._move(min(max(int(page), 1), self.last_page))

    def reset(self) -> bool:
        return self._move(1)

    def window(self) -> tuple[int, int]:
        """(offset, limit) of the rows on the current page."""
        return (self.current_page - 1) * self.page_size, self.page_size

    def _move(self, page: int) -> bool:
        if page == self.current_page:
            return False
        self.current_page = page
        return True
