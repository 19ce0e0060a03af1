"""
In-process change feed for realtime updates.

Rows of the relayed tables are captured when a SQLAlchemy session flushes
and published to subscribers only after the transaction commits. Consumers
subscribe by table plus a scoping filter written the way the browser
clients write them (``user_id=eq.<id>``) and receive the full changed row.

Delivery is at-least-once from the consumer's point of view: a row updated
twice shows up twice, and reconnecting clients re-fetch. Consumers keep
their local lists in a ``FeedState`` so redelivered rows replace, rather
than duplicate, what they already hold.
"""
from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

log = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

RELAYED_TABLES = frozenset({
    "notifications",
    "chat_messages",
    "help_request_matches",
    "help_requests",
})

_PENDING_KEY = "devhelp.pending_changes"


@dataclass(frozen=True)
class RowFilter:
    """``column=eq.value`` filter on a changed row."""
    column: str
    value: str

    @classmethod
    def parse(cls, expr: str) -> "RowFilter":
        column, sep, rest = (expr or "").partition("=")
        op, dot, value = rest.partition(".")
        if not sep or not dot or op != "eq" or not column.strip() or not value:
            raise ValueError(f"Unsupported filter expression: {expr!r}")
        return cls(column=column.strip(), value=value)

    def matches(self, row: Dict[str, Any]) -> bool:
        return str(row.get(self.column)) == self.value

    def __str__(self) -> str:
        return f"{self.column}=eq.{self.value}"


@dataclass(frozen=True)
class Change:
    table: str
    event: str
    row: Dict[str, Any]


class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``. Calling it unsubscribes."""

    def __init__(self, feed: "ChangeFeed", table: str, row_filter: RowFilter,
                 events: Iterable[str], callback: Callable[[Change], None]):
        self.id = str(uuid.uuid4())
        self.table = table
        self.row_filter = row_filter
        self.events = frozenset(events)
        self._callback = callback
        self._feed = feed
        self.active = True

    def wants(self, table: str, event_name: str, row: Dict[str, Any]) -> bool:
        return (
            self.active
            and table == self.table
            and event_name in self.events
            and self.row_filter.matches(row)
        )

    def deliver(self, change: Change) -> bool:
        try:
            self._callback(change)
            return True
        except Exception:
            # one broken consumer must not starve the others
            log.exception("Realtime callback failed (sub=%s channel=%s:%s)",
                          self.id, self.table, self.row_filter)
            return False

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._feed._remove(self)

    __call__ = unsubscribe


class ChangeFeed:
    """
    Channel registry for row changes.

    Every subscription gets its own copy of every matching change; there is
    no dedup across subscriptions (two open tabs for one user each see the
    event).
    """

    def __init__(self, app=None):
        self._subs: Dict[str, Subscription] = {}
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["change_feed"] = self
        self.clear()
        install_session_hooks()

    def subscribe(self, table: str, row_filter: RowFilter | str,
                  callback: Callable[[Change], None],
                  events: Iterable[str] = (INSERT,)) -> Subscription:
        if table not in RELAYED_TABLES:
            raise ValueError(f"Table {table!r} is not relayed")
        if isinstance(row_filter, str):
            row_filter = RowFilter.parse(row_filter)
        sub = Subscription(self, table, row_filter, events, callback)
        with self._lock:
            self._subs[sub.id] = sub
        log.debug("Subscribed %s to %s:%s (%s)", sub.id, table, row_filter, ",".join(sorted(sub.events)))
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            self._subs.pop(sub.id, None)
        log.debug("Unsubscribed %s from %s:%s", sub.id, sub.table, sub.row_filter)

    def publish(self, table: str, event_name: str, row: Dict[str, Any]) -> int:
        """Deliver one change to every matching subscription; returns the delivery count."""
        with self._lock:
            targets = [s for s in self._subs.values() if s.wants(table, event_name, row)]
        sent = 0
        for sub in targets:
            # each subscriber gets its own copy of the row
            if sub.deliver(Change(table=table, event=event_name, row=dict(row))):
                sent += 1
        return sent

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subs)
            return sum(1 for s in self._subs.values() if s.table == table)

    def clear(self) -> None:
        with self._lock:
            for sub in self._subs.values():
                sub.active = False
            self._subs.clear()


# -----------------
# Session hooks
# -----------------

def _collect_changes(session, flush_context):
    pending: "OrderedDict[tuple, tuple]" = session.info.setdefault(_PENDING_KEY, OrderedDict())

    for obj in session.new:
        table = getattr(obj, "__tablename__", None)
        if table in RELAYED_TABLES:
            pending[(table, obj.id)] = (INSERT, obj.to_dict())

    for obj in session.dirty:
        table = getattr(obj, "__tablename__", None)
        if table not in RELAYED_TABLES or not session.is_modified(obj, include_collections=False):
            continue
        key = (table, obj.id)
        # an insert later updated in the same transaction is still an insert
        event_name = pending[key][0] if key in pending else UPDATE
        pending[key] = (event_name, obj.to_dict())

    for obj in session.deleted:
        table = getattr(obj, "__tablename__", None)
        if table in RELAYED_TABLES:
            pending[(table, obj.id)] = (DELETE, obj.to_dict())


def _publish_changes(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending or not has_app_context():
        return
    feed = current_app.extensions.get("change_feed")
    if feed is None:
        return
    for (table, _row_id), (event_name, row) in pending.items():
        feed.publish(table, event_name, row)


def _discard_changes(session):
    session.info.pop(_PENDING_KEY, None)


def install_session_hooks() -> None:
    for name, fn in (
        ("after_flush", _collect_changes),
        ("after_commit", _publish_changes),
        ("after_rollback", _discard_changes),
    ):
        if not event.contains(Session, name, fn):
            event.listen(Session, name, fn)


# -----------------
# Local list state
# -----------------

class FeedState:
    """
    Id-keyed, time-ordered view of a subscribed list.

    ``upsert`` replaces an existing row with the same id instead of
    appending, so redelivered or re-fetched rows never duplicate.
    """

    def __init__(self, newest_first: bool = True):
        self.newest_first = newest_first
        self._rows: Dict[str, Dict[str, Any]] = {}

    def upsert(self, row: Dict[str, Any]) -> bool:
        """Insert or replace by id. Returns True if the id was new."""
        row_id = row.get("id")
        if row_id is None:
            raise ValueError("row without id")
        is_new = row_id not in self._rows
        self._rows[row_id] = dict(row)
        return is_new

    def replace_all(self, rows: Iterable[Dict[str, Any]]) -> None:
        self._rows = {}
        for row in rows:
            self.upsert(row)

    def patch(self, row_id: str, **fields) -> bool:
        row = self._rows.get(row_id)
        if row is None:
            return False
        row.update(fields)
        return True

    def patch_all(self, **fields) -> None:
        for row in self._rows.values():
            row.update(fields)

    def remove(self, row_id: str) -> bool:
        return self._rows.pop(row_id, None) is not None

    def get(self, row_id: str) -> Optional[Dict[str, Any]]:
        return self._rows.get(row_id)

    def items(self) -> List[Dict[str, Any]]:
        return sorted(
            self._rows.values(),
            key=lambda r: (r.get("created_at") or "", r.get("id") or ""),
            reverse=self.newest_first,
        )

    @property
    def unread_count(self) -> int:
        return sum(1 for r in self._rows.values() if not r.get("is_read"))

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, row_id) -> bool:
        return row_id in self._rows
