from fastapi import Depends, HTTPException, Query
from sqlalchemy.orm import Session

from catalog.db.database import get_db
from catalog.schemas.filters import ALL, FilterSet, PriceRange, SortOption
from catalog.services.course_service import get_filter_categories
from catalog.services.filters import InvalidFilterError, build_filter_set


def get_filters(
    branch: str = Query(ALL),
    technology: str = Query(ALL),
    program: str = Query(ALL),
    price_range: str = Query(PriceRange.ALL.value),
    sort_by: str = Query(SortOption.TITLE_ASC.value),
    db: Session = Depends(get_db),
) -> FilterSet:
    """Parse filter query parameters, rejecting values the catalog does not know."""
    try:
        return build_filter_set(
            get_filter_categories(db),
            branch=branch,
            technology=technology,
            program=program,
            price_range=price_range,
            sort_by=sort_by,
        )
    except InvalidFilterError as e:
        raise HTTPException(status_code=422, detail=str(e))
