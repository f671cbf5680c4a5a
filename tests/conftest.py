import asyncio
import os
import tempfile

# Point the app at a throwaway database before anything imports catalog.core.config
_TEST_DIR = tempfile.mkdtemp(prefix="catalog-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test_catalog.db')}"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LIVE_UPDATES_ENABLED"] = "true"

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session")
def app():
    import main as main_module
    return main_module.app


@pytest.fixture()
def db_session(app):
    from catalog.db.database import SessionLocal
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_courses(db_session):
    """Replace the whole catalog with the given rows."""
    from catalog.models.course import Course

    def _make(rows):
        # Bulk delete bypasses the unit of work, so no change events fire
        db_session.query(Course).delete()
        db_session.commit()
        courses = [Course(**row) for row in rows]
        db_session.add_all(courses)
        db_session.commit()
        return courses

    return _make


def python_catalog(matching: int = 23, other: int = 5) -> list[dict]:
    """`matching` courses that match the search "python" plus `other` that do not."""
    rows = [
        {
            "title": f"Python Course {i:02d}",
            "description": "Hands-on programming",
            "branch": "Makati" if i % 2 else "Cebu",
            "technology": "Python",
            "program": "Bootcamp" if i % 3 else "Workshop",
            "price": 1000 * i,
            "tags": "backend, scripting",
        }
        for i in range(1, matching + 1)
    ]
    rows += [
        {
            "title": f"Design Studio {i:02d}",
            "description": "Visual design fundamentals",
            "branch": "Davao",
            "technology": "UI/UX Design",
            "program": "Certificate",
            "price": 4000,
            "tags": "figma, prototyping",
        }
        for i in range(1, other + 1)
    ]
    return rows


@pytest.fixture()
def catalog_courses(make_courses):
    return make_courses(python_catalog())


@pytest.fixture()
def sql_service(app):
    from catalog.services.course_service import SqlCourseDataService
    return SqlCourseDataService()


class GatedService:
    """Wraps a data service; count queries for a gated search term wait until released."""

    def __init__(self, inner):
        self.inner = inner
        self.gates: dict[str, asyncio.Event] = {}
        self.count_calls = []
        self.page_calls = []

    async def count(self, query):
        self.count_calls.append(query)
        gate = self.gates.get(query.search_term or "")
        if gate is not None:
            await gate.wait()
        return await self.inner.count(query)

    async def fetch_page(self, query, offset, limit):
        self.page_calls.append((query, offset, limit))
        return await self.inner.fetch_page(query, offset, limit)

    async def filter_options(self):
        return await self.inner.filter_options()

    def subscribe(self, table, callback):
        return self.inner.subscribe(table, callback)


class FlakyService(GatedService):
    """Raises `error` from every page query while it is set."""

    def __init__(self, inner):
        super().__init__(inner)
        self.error = None

    async def fetch_page(self, query, offset, limit):
        if self.error is not None:
            raise self.error
        return await super().fetch_page(query, offset, limit)


@pytest.fixture()
def gated_service(sql_service):
    return GatedService(sql_service)


@pytest.fixture()
def flaky_service(sql_service):
    return FlakyService(sql_service)
