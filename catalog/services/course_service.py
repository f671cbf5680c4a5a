"""
Relational backend for the catalog.

The sync helpers translate a CourseQuery into SQLAlchemy filters and are used
directly by the HTTP routes. SqlCourseDataService wraps them for the async
browser coordinator, running each call on a worker thread with its own
session and mapping database failures onto DataServiceError.
"""

import asyncio
import logging
from typing import Callable, Protocol

from sqlalchemy import or_
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from catalog.db.database import SessionLocal
from catalog.models.course import Course
from catalog.schemas.course import CourseResponse
from catalog.schemas.filters import FilterCategories
from catalog.services.change_feed import ChangeCallback, ChangeFeed, Subscription, change_feed
from catalog.services.query_builder import CourseQuery

logger = logging.getLogger(__name__)

COURSES_TABLE = Course.__tablename__


class DataServiceError(Exception):
    """A query against the course store failed; the message is safe to show."""


class ConnectivityError(DataServiceError):
    """The course store cannot be reached at all."""


class CourseDataService(Protocol):
    async def count(self, query: CourseQuery) -> int: ...

    async def fetch_page(self, query: CourseQuery, offset: int, limit: int) -> tuple[list[CourseResponse], int]: ...

    async def filter_options(self) -> FilterCategories: ...

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription: ...


# ---------------------------------------------------------------------------
# SQL translation
# ---------------------------------------------------------------------------

def course_conditions(query: CourseQuery) -> list:
    """WHERE clauses for a descriptor. Shared by the count and page queries."""
    conditions = []

    if query.search_term:
        pattern = f"%{query.search_term}%"
        conditions.append(
            or_(*(getattr(Course, column).ilike(pattern) for column in query.search_columns))
        )

    for field, value in query.equals:
        conditions.append(getattr(Course, field) == value)

    bounds = query.price
    if bounds is not None:
        if bounds.minimum is not None:
            conditions.append(
                Course.price >= bounds.minimum if bounds.minimum_inclusive else Course.price > bounds.minimum
            )
        if bounds.maximum is not None:
            conditions.append(
                Course.price <= bounds.maximum if bounds.maximum_inclusive else Course.price < bounds.maximum
            )

    return conditions


def count_courses(db: Session, query: CourseQuery) -> int:
    return db.query(Course).filter(*course_conditions(query)).count()


def fetch_course_page(db: Session, query: CourseQuery, offset: int, limit: int) -> tuple[list[Course], int]:
    """Return one sorted window of matching courses and the exact total."""
    base = db.query(Course).filter(*course_conditions(query))
    total = base.count()

    column = getattr(Course, query.sort_column)
    order = column.asc() if query.ascending else column.desc()
    # id keeps ties in a stable order so pages never overlap
    rows = base.order_by(order, Course.id.asc()).offset(offset).limit(limit).all()
    return rows, total


def get_filter_categories(db: Session) -> FilterCategories:
    def distinct(column) -> list[str]:
        rows = db.query(column).filter(column.isnot(None)).distinct().order_by(column).all()
        return [value for (value,) in rows]

    return FilterCategories(
        branches=distinct(Course.branch),
        technologies=distinct(Course.technology),
        programs=distinct(Course.program),
    )


# ---------------------------------------------------------------------------
# Async adapter
# ---------------------------------------------------------------------------

class SqlCourseDataService:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, feed: ChangeFeed = change_feed):
        self.session_factory = session_factory
        self.feed = feed

    async def count(self, query: CourseQuery) -> int:
        return await self._run(count_courses, query)

    async def fetch_page(self, query: CourseQuery, offset: int, limit: int) -> tuple[list[CourseResponse], int]:
        return await self._run(self._page, query, offset, limit)

    async def filter_options(self) -> FilterCategories:
        return await self._run(get_filter_categories)

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        return self.feed.subscribe(table, callback)

    @staticmethod
    def _page(db: Session, query: CourseQuery, offset: int, limit: int) -> tuple[list[CourseResponse], int]:
        rows, total = fetch_course_page(db, query, offset, limit)
        # Detach from the session before it closes
        return [CourseResponse.model_validate(row) for row in rows], total

    async def _run(self, fn, *args):
        return await asyncio.to_thread(self._call, fn, *args)

    def _call(self, fn, *args):
        db = self.session_factory()
        try:
            return fn(db, *args)
        except (OperationalError, InterfaceError, DisconnectionError) as e:
            logger.error(f"Course database unreachable during {fn.__name__}: {e}")
            raise ConnectivityError("Could not connect to the course database.") from e
        except SQLAlchemyError as e:
            logger.error(f"Course query {fn.__name__} failed: {e}")
            raise DataServiceError("Could not load courses. Please try again.") from e
        finally:
            db.close()
