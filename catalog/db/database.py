from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from catalog.core.config import settings
from catalog.services.change_feed import change_feed

# SQLite needs connect_args for use across worker threads
connect_args = {"check_same_thread": False} if "sqlite" in settings.database_url else {}
engine = create_engine(settings.database_url, connect_args=connect_args)

# Enable foreign key enforcement in SQLite (off by default)
if "sqlite" in settings.database_url:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

if settings.live_updates_enabled:
    change_feed.install(SessionLocal)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables registered on Base."""
    import catalog.models  # noqa: F401  register models on Base.metadata

    Base.metadata.create_all(bind=engine)
