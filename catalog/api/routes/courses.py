import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from catalog.api.deps import get_filters
from catalog.db.database import get_db
from catalog.models.course import Course
from catalog.schemas.course import CourseCreate, CoursePage, CourseResponse, CourseUpdate
from catalog.schemas.filters import FilterOptions, FilterSet
from catalog.services.course_service import count_courses, fetch_course_page, get_filter_categories
from catalog.services.pagination import Pagination
from catalog.services.query_builder import build_course_query

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/courses", tags=["Courses"])


def _get_course_or_404(db: Session, course_id: int) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


@router.get("/", response_model=CoursePage)
def browse_courses(
    search: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    filters: FilterSet = Depends(get_filters),
    db: Session = Depends(get_db),
):
    """One page of courses matching the search term and filters.

    Pages past the end are clamped to the last page.
    """
    query = build_course_query(search, filters)

    pagination = Pagination()
    pagination.update_total(count_courses(db, query))
    pagination.go_to_page(page)
    offset, limit = pagination.window()

    rows, total = fetch_course_page(db, query, offset, limit)
    pagination.update_total(total)

    return CoursePage(
        courses=[CourseResponse.model_validate(c) for c in rows],
        current_page=pagination.current_page,
        total_pages=pagination.total_pages,
        total_count=pagination.total_count,
        has_next_page=pagination.has_next_page,
        has_prev_page=pagination.has_prev_page,
    )


@router.get("/filters", response_model=FilterOptions)
def list_filter_options(db: Session = Depends(get_db)):
    categories = get_filter_categories(db)
    return FilterOptions(**categories.model_dump())


@router.get("/{course_id}", response_model=CourseResponse)
def get_course(course_id: int, db: Session = Depends(get_db)):
    return _get_course_or_404(db, course_id)


@router.post("/", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
def create_course(course_data: CourseCreate, db: Session = Depends(get_db)):
    course = Course(**course_data.model_dump())
    db.add(course)
    db.commit()
    db.refresh(course)
    logger.info(f"Created course {course.id} ({course.title})")
    return course


@router.patch("/{course_id}", response_model=CourseResponse)
def update_course(course_id: int, course_data: CourseUpdate, db: Session = Depends(get_db)):
    course = _get_course_or_404(db, course_id)
    updates = course_data.model_dump(exclude_unset=True)
    if updates.get("title", "") is None or ("price" in updates and updates["price"] is None):
        raise HTTPException(status_code=422, detail="title and price cannot be null")
    for field, value in updates.items():
        setattr(course, field, value)
    db.commit()
    db.refresh(course)
    logger.info(f"Updated course {course.id}: {sorted(updates)}")
    return course


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_course(course_id: int, db: Session = Depends(get_db)):
    course = _get_course_or_404(db, course_id)
    db.delete(course)
    db.commit()
    logger.info(f"Deleted course {course_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
