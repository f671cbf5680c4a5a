import logging
from typing import Callable

from pydantic import ValidationError

from catalog.schemas.filters import ALL, FilterCategories, FilterSet

logger = logging.getLogger(__name__)

FILTER_FIELDS = ("branch", "technology", "program", "price_range", "sort_by")

# FilterSet field -> FilterCategories attribute holding its legal values
_CATEGORY_FIELDS = {
    "branch": "branches",
    "technology": "technologies",
    "program": "programs",
}


class InvalidFilterError(ValueError):
    """A filter field or value outside the known domain."""


def validate_filter_value(field: str, value: str, categories: FilterCategories | None = None) -> None:
    """Reject unknown fields and categorical values the catalog does not contain.

    Without categories any categorical string is accepted; price_range and
    sort_by are always checked against their enums by FilterSet itself.
    """
    if field not in FILTER_FIELDS:
        raise InvalidFilterError(f"Unknown filter '{field}'")
    if categories is None or field not in _CATEGORY_FIELDS or value == ALL:
        return
    known = getattr(categories, _CATEGORY_FIELDS[field])
    if value not in known:
        raise InvalidFilterError(f"Unknown {field} '{value}'")


def build_filter_set(categories: FilterCategories | None = None, **values) -> FilterSet:
    """Build a FilterSet from raw strings, raising InvalidFilterError on bad input."""
    for field, value in values.items():
        validate_filter_value(field, value, categories)
    try:
        return FilterSet(**values)
    except ValidationError as e:
        bad = ", ".join(str(err["loc"][0]) for err in e.errors())
        raise InvalidFilterError(f"Invalid value for {bad}") from e


class FilterState:
    """Holds the live FilterSet; every transition swaps in a whole new value."""

    def __init__(self, categories: FilterCategories | None = None):
        self.categories = categories
        self._filters = FilterSet()
        self._listeners: list[Callable[[FilterSet], None]] = []

    @property
    def filters(self) -> FilterSet:
        return self._filters

    def on_change(self, listener: Callable[[FilterSet], None]) -> None:
        self._listeners.append(listener)

    def update_filter(self, field: str, value: str) -> FilterSet:
        validate_filter_value(field, value, self.categories)
        values = self._filters.model_dump()
        values[field] = value
        self._set(build_filter_set(**values))
        return self._filters

    def clear_filters(self) -> FilterSet:
        self._set(FilterSet())
        return self._filters

    def _set(self, filters: FilterSet) -> None:
        if filters == self._filters:
            return
        self._filters = filters
        logger.debug(f"Filters changed: {filters.model_dump(mode='json')}")
        for listener in self._listeners:
            listener(filters)
