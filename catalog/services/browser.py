import asyncio
import logging
from typing import Callable

from pydantic import BaseModel

from catalog.schemas.course import BrowserState
from catalog.schemas.filters import FilterSet
from catalog.services.change_feed import ChangeEvent, Subscription
from catalog.services.course_data import CourseDataCoordinator
from catalog.services.course_service import COURSES_TABLE, CourseDataService, DataServiceError
from catalog.services.filters import FilterState

logger = logging.getLogger(__name__)


class CatalogView(BrowserState):
    filters: FilterSet
    search_term: str


class CatalogBrowser:
    """
    Application shell for one catalog view.

    Owns the search term and the FilterState and keeps the data coordinator
    in step with both. The rendering layer reads `state` and calls the
    navigation and filter methods.
    """

    def __init__(
        self,
        service: CourseDataService,
        *,
        on_page_change: Callable[[int], None] | None = None,
        on_state_change: Callable[[BrowserState], None] | None = None,
    ):
        self.service = service
        self.search_term = ""
        self.filter_state = FilterState()
        self.courses = CourseDataCoordinator(
            service,
            on_page_change=on_page_change,
            on_state_change=on_state_change,
        )
        self.filter_state.on_change(self.courses.set_filters)

        self._subscription: Subscription | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._reloads: set[asyncio.Task] = set()
        self._categories_generation = 0
        self._closed = False

    async def open(self) -> None:
        """Load the known filter categories, then mount the coordinator.

        Categories are reloaded on every live update so values introduced by
        new or edited courses become selectable.
        """
        self._loop = asyncio.get_running_loop()
        self._subscription = self.service.subscribe(COURSES_TABLE, self._on_remote_change)
        await self._load_categories()
        await self.courses.mount()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        reloads = list(self._reloads)
        for task in reloads:
            task.cancel()
        await asyncio.gather(*reloads, return_exceptions=True)
        await self.courses.close()

    async def _load_categories(self) -> None:
        self._categories_generation += 1
        generation = self._categories_generation
        try:
            categories = await self.service.filter_options()
        except DataServiceError as e:
            # Without categories filters are passed through unchecked
            logger.warning(f"Could not load filter categories: {e}")
            return
        if generation != self._categories_generation or self._closed:
            return
        self.filter_state.categories = categories

    def _on_remote_change(self, change: ChangeEvent) -> None:
        loop = self._loop
        if loop is None or self._closed or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._schedule_category_reload)

    def _schedule_category_reload(self) -> None:
        if self._closed:
            return
        task = self._loop.create_task(self._load_categories())
        self._reloads.add(task)
        task.add_done_callback(self._reloads.discard)

    async def __aenter__(self) -> "CatalogBrowser":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def filters(self) -> FilterSet:
        return self.filter_state.filters

    @property
    def state(self) -> CatalogView:
        return CatalogView(
            **self.courses.state.model_dump(),
            filters=self.filters,
            search_term=self.search_term,
        )

    def on_search_change(self, search_term: str) -> asyncio.Task | None:
        self.search_term = search_term
        return self.courses.set_search_term(search_term)

    def update_filter(self, field: str, value: str) -> FilterSet:
        return self.filter_state.update_filter(field, value)

    def clear_filters(self) -> FilterSet:
        return self.filter_state.clear_filters()

    def next_page(self) -> asyncio.Task | None:
        return self.courses.next_page()

    def prev_page(self) -> asyncio.Task | None:
        return self.courses.prev_page()

    def go_to_page(self, page: int) -> asyncio.Task | None:
        return self.courses.go_to_page(page)

    async def refetch(self) -> None:
        await self.courses.refetch()

    async def settle(self) -> None:
        """Wait for in-flight page fetches and category reloads."""
        await self.courses.settle()
        while self._reloads:
            await asyncio.gather(*list(self._reloads), return_exceptions=True)
            await self.courses.settle()

    def summary(self) -> str:
        text = f"Page {self.courses.current_page} of {self.courses.total_pages} • {self.courses.total_count} courses found"
        if self.search_term:
            text += f' for "{self.search_term}"'
        return text
