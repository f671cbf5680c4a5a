import enum

from pydantic import BaseModel

# Sentinel meaning "no constraint" for categorical and price filters
ALL = "All"


class PriceRange(str, enum.Enum):
    ALL = "All"
    UP_TO_5000 = "₱0-₱5,000"
    FROM_5001_TO_10000 = "₱5,001-₱10,000"
    ABOVE_10000 = "₱10,001+"


class SortOption(str, enum.Enum):
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"


class FilterSet(BaseModel):
    branch: str = ALL
    technology: str = ALL
    program: str = ALL
    price_range: PriceRange = PriceRange.ALL
    sort_by: SortOption = SortOption.TITLE_ASC

    class Config:
        frozen = True


class FilterCategories(BaseModel):
    """Categorical values currently present in the catalog."""
    branches: list[str] = []
    technologies: list[str] = []
    programs: list[str] = []


class FilterOptions(FilterCategories):
    price_ranges: list[PriceRange] = list(PriceRange)
    sort_options: list[SortOption] = list(SortOption)
