"""
Translate a search term and FilterSet into a CourseQuery descriptor.

The descriptor is storage-neutral: course_service turns it into SQL. The
count query and the page query are both built from one descriptor, so the
total shown to the user never drifts from the rows returned.

Price buckets are half-open on the lower side above zero, so a boundary
price belongs to exactly one bucket:

    ₱0-₱5,000        0 <= price <= 5000
    ₱5,001-₱10,000   5000 < price <= 10000
    ₱10,001+         10000 < price
"""

from pydantic import BaseModel

from catalog.schemas.filters import ALL, FilterSet, PriceRange, SortOption

SEARCH_COLUMNS = ("title", "description", "technology", "tags")
EQUALITY_FIELDS = ("branch", "technology", "program")

DEFAULT_SORT = ("title", True)

SORT_ORDER: dict[SortOption, tuple[str, bool]] = {
    SortOption.TITLE_ASC: ("title", True),
    SortOption.TITLE_DESC: ("title", False),
    SortOption.PRICE_ASC: ("price", True),
    SortOption.PRICE_DESC: ("price", False),
}


class PriceBounds(BaseModel):
    minimum: float | None = None
    minimum_inclusive: bool = True
    maximum: float | None = None
    maximum_inclusive: bool = True

    class Config:
        frozen = True

    def contains(self, price: float) -> bool:
        if self.minimum is not None:
            if price < self.minimum or (price == self.minimum and not self.minimum_inclusive):
                return False
        if self.maximum is not None:
            if price > self.maximum or (price == self.maximum and not self.maximum_inclusive):
                return False
        return True


PRICE_BUCKETS: dict[PriceRange, PriceBounds] = {
    PriceRange.UP_TO_5000: PriceBounds(minimum=0, maximum=5000),
    PriceRange.FROM_5001_TO_10000: PriceBounds(minimum=5000, minimum_inclusive=False, maximum=10000),
    PriceRange.ABOVE_10000: PriceBounds(minimum=10000, minimum_inclusive=False),
}


class CourseQuery(BaseModel):
    search_term: str | None = None
    search_columns: tuple[str, ...] = SEARCH_COLUMNS
    equals: tuple[tuple[str, str], ...] = ()
    price: PriceBounds | None = None
    sort_column: str = DEFAULT_SORT[0]
    ascending: bool = DEFAULT_SORT[1]

    class Config:
        frozen = True


def resolve_sort(sort_by: SortOption | str | None) -> tuple[str, bool]:
    """Return (column, ascending); anything unrecognised sorts by title ascending."""
    if not sort_by:
        return DEFAULT_SORT
    try:
        return SORT_ORDER[SortOption(sort_by)]
    except ValueError:
        return DEFAULT_SORT


def build_course_query(search_term: str = "", filters: FilterSet | None = None) -> CourseQuery:
    equals: list[tuple[str, str]] = []
    price = None
    sort_by = None

    if filters is not None:
        for field in EQUALITY_FIELDS:
            value = getattr(filters, field)
            if value != ALL:
                equals.append((field, value))
        price = PRICE_BUCKETS.get(filters.price_range)
        sort_by = filters.sort_by

    sort_column, ascending = resolve_sort(sort_by)
    return CourseQuery(
        search_term=search_term or None,
        equals=tuple(equals),
        price=price,
        sort_column=sort_column,
        ascending=ascending,
    )
