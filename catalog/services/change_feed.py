"""
In-process live-update channel for committed table changes.

Sessions created by an installed sessionmaker record every ORM insert, update
and delete during flush and publish them once the outer transaction commits.
Rolled-back work is never published. Subscribers are scoped to a table name
and receive a ChangeEvent carrying the kind of change and the primary key;
nothing is guaranteed about which filters the changed row now matches.
"""

import enum
import logging
import threading
from typing import Callable

from pydantic import BaseModel
from sqlalchemy import event, inspect

logger = logging.getLogger(__name__)

_PENDING_KEY = "catalog.pending_changes"


class ChangeKind(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    table: str
    kind: ChangeKind
    record_id: int | None = None


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """Registration of one callback on one table. Closing is idempotent."""

    def __init__(self, feed: "ChangeFeed", table: str, callback: ChangeCallback):
        self.table = table
        self.callback = callback
        self._feed = feed
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        logger.debug(f"Closed live-update subscription on {self.table}")

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._targets: list = []

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, table, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug(f"Opened live-update subscription on {table}")
        return subscription

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.table == table)

    def publish(self, change: ChangeEvent) -> None:
        """Deliver a change to every subscriber of its table, on the calling thread."""
        with self._lock:
            targets = [s for s in self._subscriptions if s.table == change.table]
        for subscription in targets:
            try:
                subscription.callback(change)
            except Exception:
                # One broken subscriber must not starve the others or fail the commit
                logger.exception(f"Live-update subscriber on {change.table} raised")

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    # ------------------------------------------------------------------
    # SQLAlchemy wiring
    # ------------------------------------------------------------------

    def install(self, target) -> None:
        """Attach flush/commit/rollback listeners to a sessionmaker or Session class."""
        if any(t is target for t in self._targets):
            return
        event.listen(target, "after_flush", self._after_flush)
        event.listen(target, "after_commit", self._after_commit)
        event.listen(target, "after_rollback", self._after_rollback)
        self._targets.append(target)

    def _after_flush(self, session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.new:
            self._record(pending, obj, ChangeKind.INSERT)
        for obj in session.dirty:
            if session.is_modified(obj, include_collections=False):
                self._record(pending, obj, ChangeKind.UPDATE)
        for obj in session.deleted:
            self._record(pending, obj, ChangeKind.DELETE)

    def _after_commit(self, session) -> None:
        for change in session.info.pop(_PENDING_KEY, []):
            self.publish(change)

    def _after_rollback(self, session) -> None:
        session.info.pop(_PENDING_KEY, None)

    @staticmethod
    def _record(pending: list[ChangeEvent], obj, kind: ChangeKind) -> None:
        table = getattr(obj, "__tablename__", None)
        if table is None:
            return
        state = inspect(obj)
        if state.key is not None:
            key = state.key[1]
        else:
            # New rows have their key populated by now but not yet registered
            key = state.mapper.primary_key_from_instance(obj)
        record_id = key[0] if len(key) == 1 else None
        pending.append(ChangeEvent(table=table, kind=kind, record_id=record_id))


change_feed = ChangeFeed()
