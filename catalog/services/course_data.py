"""
CourseDataCoordinator: the state behind one catalog browser view.

Inputs are the search term, the live FilterSet and the current page. Any
change to them (or a live-update notification for the courses table)
triggers a fetch: a count query followed by a page query, both built from one
immutable FetchSnapshot taken when the fetch starts. Search and filter
changes send the user back to page 1 before fetching, so they fetch once and
never at a stale page number.

Fetches are never aborted. Each one carries a generation number and only the
newest generation may commit; anything older that completes later is
dropped. A failed fetch keeps the last good page on screen and sets `error`.
"""

import asyncio
import logging
from typing import Callable

from pydantic import BaseModel

from catalog.schemas.course import BrowserState, CourseResponse
from catalog.schemas.filters import FilterSet
from catalog.services.change_feed import ChangeEvent, Subscription
from catalog.services.course_service import COURSES_TABLE, ConnectivityError, CourseDataService, DataServiceError
from catalog.services.pagination import ITEMS_PER_PAGE, Pagination
from catalog.services.query_builder import build_course_query

logger = logging.getLogger(__name__)


class FetchSnapshot(BaseModel):
    search_term: str
    filters: FilterSet
    page: int
    generation: int

    class Config:
        frozen = True


class CourseDataCoordinator:
    def __init__(
        self,
        service: CourseDataService,
        *,
        search_term: str = "",
        filters: FilterSet | None = None,
        page_size: int = ITEMS_PER_PAGE,
        on_page_change: Callable[[int], None] | None = None,
        on_state_change: Callable[[BrowserState], None] | None = None,
    ):
        self.service = service
        self.search_term = search_term
        self.filters = filters or FilterSet()
        self.pagination = Pagination(page_size)

        self.courses: list[CourseResponse] = []
        self.loading = True
        self.error: str | None = None
        self.fatal_error: str | None = None

        # Rendering hooks: scroll-to-top on page change, redraw on state change
        self._on_page_change = on_page_change
        self._on_state_change = on_state_change

        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._subscription: Subscription | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._mounted = False
        self._closed = False

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def current_page(self) -> int:
        return self.pagination.current_page

    @property
    def total_count(self) -> int:
        return self.pagination.total_count

    @property
    def total_pages(self) -> int:
        return self.pagination.total_pages

    @property
    def has_next_page(self) -> bool:
        return self.pagination.has_next_page

    @property
    def has_prev_page(self) -> bool:
        return self.pagination.has_prev_page

    @property
    def state(self) -> BrowserState:
        return BrowserState(
            courses=list(self.courses),
            loading=self.loading,
            error=self.error,
            fatal_error=self.fatal_error,
            current_page=self.current_page,
            total_pages=self.total_pages,
            total_count=self.total_count,
            has_next_page=self.has_next_page,
            has_prev_page=self.has_prev_page,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> None:
        """Open the live-update subscription and load the first page. Idempotent."""
        if self._closed:
            raise RuntimeError("Coordinator has been closed")
        if self._mounted:
            return
        self._mounted = True
        self._loop = asyncio.get_running_loop()
        self._subscription = self.service.subscribe(COURSES_TABLE, self._on_remote_change)
        await self.refetch()

    async def close(self) -> None:
        """Release the subscription and drop any fetch still in flight."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> "CourseDataCoordinator":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def settle(self) -> None:
        """Wait until no fetch is in flight, including ones queued from other threads."""
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await asyncio.sleep(0)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def set_search_term(self, search_term: str) -> asyncio.Task | None:
        if search_term == self.search_term:
            return None
        self.search_term = search_term
        return self._inputs_changed()

    def set_filters(self, filters: FilterSet) -> asyncio.Task | None:
        if filters == self.filters:
            return None
        self.filters = filters
        return self._inputs_changed()

    def _inputs_changed(self) -> asyncio.Task | None:
        # New criteria always start from page one; the reset must not fetch on its own
        if self.pagination.reset():
            self._notify_page_change()
        return self._schedule_fetch()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next_page(self) -> asyncio.Task | None:
        if not self.pagination.next_page():
            return None
        return self._page_changed()

    def prev_page(self) -> asyncio.Task | None:
        if not self.pagination.prev_page():
            return None
        return self._page_changed()

    def go_to_page(self, page: int) -> asyncio.Task | None:
        if not self.pagination.go_to_page(page):
            return None
        if self.current_page != page:
            logger.debug(f"Requested page {page} clamped to {self.current_page}")
        return self._page_changed()

    def _page_changed(self) -> asyncio.Task | None:
        self._notify_page_change()
        return self._schedule_fetch()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(self) -> None:
        """Fetch the current page and wait for it to land.

        Runs as a tracked task, so settle() waits for it and close() cancels it.
        Does nothing before mount or after close.
        """
        task = self._schedule_fetch()
        if task is not None:
            await asyncio.wait({task})

    refetch = fetch

    async def _run_fetch(self) -> None:
        if self._closed:
            return
        self._generation += 1
        snapshot = FetchSnapshot(
            search_term=self.search_term,
            filters=self.filters,
            page=self.current_page,
            generation=self._generation,
        )
        self.loading = True
        self._emit()

        query = build_course_query(snapshot.search_term, snapshot.filters)
        limit = self.pagination.page_size
        offset = (snapshot.page - 1) * limit

        try:
            total = await self.service.count(query)
            courses, _ = await self.service.fetch_page(query, offset, limit)
        except Exception as e:
            if self._is_stale(snapshot):
                logger.debug(f"Ignoring failure of superseded fetch {snapshot.generation}: {e}")
                return
            self._fail(e)
            return

        if self._is_stale(snapshot):
            logger.debug(f"Discarding stale result of fetch {snapshot.generation} (latest is {self._generation})")
            return

        self.courses = courses
        self.pagination.update_total(total)
        self.error = None
        self.fatal_error = None
        logger.debug(
            f"Loaded page {snapshot.page}/{self.total_pages} ({len(courses)} of {total} courses) "
            f"for search={snapshot.search_term!r}"
        )

        if self.current_page > self.pagination.last_page:
            # Rows were removed underneath us; follow the result set to its new last page
            self.pagination.go_to_page(self.pagination.last_page)
            self._page_changed()
            self._emit()
            return

        self.loading = False
        self._emit()

    def _fail(self, error: Exception) -> None:
        if isinstance(error, DataServiceError):
            message = str(error)
            logger.error(f"Error fetching courses: {message}")
        else:
            message = str(error) or "An error occurred"
            logger.exception("Unexpected error fetching courses")
        self.error = message
        if isinstance(error, ConnectivityError):
            self.fatal_error = message
        self.loading = False
        self._emit()

    def _is_stale(self, snapshot: FetchSnapshot) -> bool:
        return self._closed or snapshot.generation != self._generation

    def _schedule_fetch(self) -> asyncio.Task | None:
        # Before mount there is nothing to refresh; mount fetches with the latest inputs
        if not self._mounted or self._closed:
            return None
        task = self._loop.create_task(self._run_fetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    def _on_remote_change(self, change: ChangeEvent) -> None:
        """Called by the change feed, possibly from another thread."""
        loop = self._loop
        if loop is None or self._closed or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._refetch_for_change, change)

    def _refetch_for_change(self, change: ChangeEvent) -> None:
        if self._closed:
            return
        logger.info(
            f"Live update on {change.table} ({change.kind.value} id={change.record_id}); "
            f"refetching page {self.current_page}"
        )
        self._schedule_fetch()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_page_change(self) -> None:
        if self._on_page_change is not None:
            self._on_page_change(self.current_page)

    def _emit(self) -> None:
        if self._on_state_change is not None:
            self._on_state_change(self.state)
