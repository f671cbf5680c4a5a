from catalog.schemas.course import CourseCreate, CourseUpdate, CourseResponse, CoursePage, BrowserState
from catalog.schemas.filters import ALL, FilterSet, FilterCategories, FilterOptions, PriceRange, SortOption

__all__ = [
    "CourseCreate", "CourseUpdate", "CourseResponse", "CoursePage", "BrowserState",
    "ALL", "FilterSet", "FilterCategories", "FilterOptions", "PriceRange", "SortOption",
]
