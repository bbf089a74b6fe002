"""
Pytest configuration and shared fixtures for transfer engine tests.

Copiers and connection providers here are deterministic stand-ins that
plug into the same seams the real ODBC/MySQL implementations use.
"""

import sqlite3
import threading
import time
from typing import Any, Dict, List, Optional

import pytest

from dbmigrate.copiers.base import BatchResult, CopyCursor, RowCopier
from dbmigrate.models.catalog import DatabaseObject, ObjectKind
from dbmigrate.models.config import RetryPolicy
from dbmigrate.models.transfer import StateChangeEvent, TransferSession
from dbmigrate.services.connections import TargetConnectionProvider
from dbmigrate.services.scheduler import TransferScheduler
from dbmigrate.services.state_store import TransferStateStore


class ScriptedCopier(RowCopier):
    """
    Copier producing a fixed number of rows per object.

    Failures are scripted per object as ``(offset, exception, times)``: the
    exception is raised by the batch starting at or after ``offset``, for
    the first ``times`` attempts (None for always).
    """

    def __init__(
        self,
        rows: Optional[Dict[str, int]] = None,
        delay: float = 0.0,
        slow_batch_size: Optional[int] = None,
        slow_delay: float = 0.5
    ):
        super().__init__()
        self.rows = rows or {}
        self.delay = delay
        self.slow_batch_size = slow_batch_size
        self.slow_delay = slow_delay
        self.failures: Dict[str, List[Any]] = {}
        self.calls: List[str] = []
        self.batch_sizes: Dict[str, List[int]] = {}
        self.schemas_created: List[str] = []
        self.closed: List[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def fail(self, name: str, exception: Exception, offset: int = 0, times: Optional[int] = 1):
        self.failures[name] = [offset, exception, times]

    def count_records(self, obj: DatabaseObject) -> Optional[int]:
        if not obj.kind.is_row_bearing:
            return 1
        return self.rows.get(obj.name)

    def create_schema(self, obj: DatabaseObject, connection: Any) -> None:
        self.schemas_created.append(obj.name)

    def copy_batch(
        self,
        obj: DatabaseObject,
        cursor: Optional[CopyCursor],
        batch_size: int,
        connection: Any
    ) -> BatchResult:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append(obj.name)
            self.batch_sizes.setdefault(obj.name, []).append(batch_size)

        try:
            if self.slow_batch_size is not None and batch_size > self.slow_batch_size:
                time.sleep(self.slow_delay)
            elif self.delay:
                time.sleep(self.delay)

            if not obj.kind.is_row_bearing:
                self._maybe_fail(obj.name, 0)
                return BatchResult(rows_copied=1, next_cursor=None, is_final=True)

            offset = cursor.offset if cursor else 0
            self._maybe_fail(obj.name, offset)

            total = self.rows.get(obj.name, 0)
            count = min(batch_size, total - offset)
            next_cursor = CopyCursor(offset=offset + count)
            return BatchResult(rows_copied=count, next_cursor=next_cursor, is_final=offset + count >= total)
        finally:
            with self._lock:
                self.active -= 1

    def close(self, cursor: Optional[CopyCursor]) -> None:
        if cursor is not None:
            self.closed.append(str(cursor.offset))

    def _maybe_fail(self, name: str, offset: int) -> None:
        failure = self.failures.get(name)
        if not failure:
            return
        at_offset, exception, times = failure
        if offset < at_offset:
            return
        if times is not None:
            if times <= 0:
                return
            failure[2] = times - 1
        raise exception


class CountingProvider(TargetConnectionProvider):
    """Provider handing out placeholder connections and counting them."""

    def __init__(self, connection: Any = None):
        self.connection = connection
        self.acquired = 0
        self.released = 0
        self.discarded = 0
        self.in_use = 0
        self.max_in_use = 0
        self._lock = threading.Lock()

    def acquire(self) -> Any:
        with self._lock:
            self.acquired += 1
            self.in_use += 1
            self.max_in_use = max(self.max_in_use, self.in_use)
        return self.connection if self.connection is not None else object()

    def release(self, connection: Any, discard: bool = False) -> None:
        with self._lock:
            self.released += 1
            self.in_use -= 1
            if discard:
                self.discarded += 1


class EventRecorder:
    """State change listener keeping every event."""

    def __init__(self):
        self.events: List[StateChangeEvent] = []

    def __call__(self, event: StateChangeEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[StateChangeEvent]:
        return [e for e in self.events if e.type == event_type]

    def for_item(self, name: str) -> List[StateChangeEvent]:
        return [e for e in self.events if e.item.name == name]


def table(name: str, count: Optional[int] = None) -> DatabaseObject:
    return DatabaseObject(name=name, kind=ObjectKind.TABLE, estimated_record_count=count)


def query(name: str, definition: str = "SELECT 1") -> DatabaseObject:
    return DatabaseObject(name=name, kind=ObjectKind.QUERY, definition=definition)


def make_scheduler(
    objects: List[DatabaseObject],
    copier: RowCopier,
    provider: Optional[TargetConnectionProvider] = None,
    concurrency: int = 1,
    batch_size: int = 500,
    batch_timeout: Optional[float] = 5.0,
    retry_policy: Optional[RetryPolicy] = None,
    recorder: Optional[EventRecorder] = None
) -> TransferScheduler:
    session = TransferSession(selection=[o.name for o in objects])
    store = TransferStateStore(session.id)
    if recorder is not None:
        store.subscribe(recorder)
    return TransferScheduler(
        session=session,
        store=store,
        objects=objects,
        copiers={kind: copier for kind in ObjectKind},
        provider=provider or CountingProvider(),
        concurrency=concurrency,
        batch_size=batch_size,
        batch_timeout=batch_timeout,
        retry_policy=retry_policy,
    )


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def provider():
    return CountingProvider()


@pytest.fixture
def source_db(tmp_path):
    """Path of a sqlite source database with a few populated tables."""
    path = tmp_path / "source.db"
    connection = sqlite3.connect(str(path))
    connection.execute("CREATE TABLE Customers (id INTEGER PRIMARY KEY, name TEXT, city TEXT)")
    connection.executemany(
        "INSERT INTO Customers VALUES (?, ?, ?)",
        [(i, f"Customer {i}", "Berlin" if i % 2 else "Paris") for i in range(1, 26)],
    )
    connection.execute('CREATE TABLE "Order Details" (order_id INTEGER, product TEXT, quantity INTEGER)')
    connection.executemany(
        'INSERT INTO "Order Details" VALUES (?, ?, ?)',
        [(i // 3, f"Product {i}", i) for i in range(20)],
    )
    connection.execute("CREATE TABLE Empty (id INTEGER)")
    connection.execute("CREATE TABLE Duplicates (id INTEGER, label TEXT)")
    connection.executemany(
        "INSERT INTO Duplicates VALUES (?, ?)",
        [(1, "a"), (2, "b"), (2, "c"), (3, "d")],
    )
    connection.commit()
    connection.close()
    return str(path)


@pytest.fixture
def source_connect(source_db):
    def connect():
        return sqlite3.connect(source_db, check_same_thread=False)
    return connect


@pytest.fixture
def target_connection():
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    yield connection
    connection.close()
