"""Authoritative per-session table of transfer items."""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from ..models.catalog import DatabaseObject
from ..models.transfer import (
    EventType,
    StateChangeEvent,
    TransferError,
    TransferItem,
    TransferStatus,
)

logger = logging.getLogger(__name__)

Listener = Callable[[StateChangeEvent], None]


def initial_total(obj: DatabaseObject) -> int:
    """Record total an item starts with before a worker fixes it."""
    if not obj.kind.is_row_bearing:
        return 1
    return obj.estimated_record_count or 0


class TransferStateStore:
    """
    Single source of truth for item status and progress.

    Every write is a compare-and-set on the item's current status, taken
    under one lock. Nothing leaves a terminal status except
    ``reset_for_retry`` from FAILED. Rejected transitions return False.
    Accepted ones notify every listener with a StateChangeEvent.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._items: Dict[str, TransferItem] = {}
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        """Register a change listener."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Reads

    def get(self, name: str) -> Optional[TransferItem]:
        """Get a copy of an item."""
        with self._lock:
            item = self._items.get(name)
            return item.copy() if item else None

    def items(self) -> List[TransferItem]:
        """Copies of all items in selection order."""
        with self._lock:
            return [item.copy() for item in self._items.values()]

    def status_of(self, name: str) -> Optional[TransferStatus]:
        with self._lock:
            item = self._items.get(name)
            return item.status if item else None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: str) -> bool:
        return name in self._items

    # Writes

    def add(self, obj: DatabaseObject, item: Optional[TransferItem] = None) -> TransferItem:
        """
        Create the item for a selected object.

        Args:
            obj: Selected catalog object
            item: Restored item state to use instead of a fresh PENDING item

        Raises:
            ValueError: If an item with this name already exists
        """
        with self._lock:
            if obj.name in self._items:
                raise ValueError(f"Item already exists: {obj.name}")
            if item is None:
                item = TransferItem(name=obj.name, kind=obj.kind, total_records=initial_total(obj))
            self._items[obj.name] = item
            snapshot = item.copy()

        self._notify(EventType.CREATED, snapshot, None)
        return snapshot

    def begin(self, name: str, total_records: int) -> bool:
        """PENDING -> IN_PROGRESS, fixing the record total."""
        def apply(item: TransferItem) -> None:
            item.status = TransferStatus.IN_PROGRESS
            item.total_records = max(total_records, 0)
            item.records_transferred = 0
            item.progress_percent = 0
            item.error = None
            item.started_at = datetime.utcnow()
            item.completed_at = None

        return self._transition(name, {TransferStatus.PENDING}, apply, EventType.STARTED)

    def set_total(self, name: str, total_records: int) -> bool:
        """Fix the record total of an IN_PROGRESS item once it is known."""
        def apply(item: TransferItem) -> None:
            item.total_records = max(total_records, 0)
            item.records_transferred = min(item.records_transferred, item.total_records)

        return self._transition(name, {TransferStatus.IN_PROGRESS}, apply, EventType.PROGRESS)

    def record_progress(self, name: str, records_transferred: int) -> bool:
        """
        Update progress of an IN_PROGRESS item.

        Records are clamped to the total and percentages never go down.
        """
        def apply(item: TransferItem) -> None:
            records = max(item.records_transferred, min(records_transferred, item.total_records))
            item.records_transferred = records
            if item.total_records > 0:
                percent = (100 * records) // item.total_records
                item.progress_percent = max(item.progress_percent, min(max(percent, 0), 100))

        return self._transition(name, {TransferStatus.IN_PROGRESS}, apply, EventType.PROGRESS)

    def complete(self, name: str) -> bool:
        """IN_PROGRESS -> COMPLETED at 100 %."""
        def apply(item: TransferItem) -> None:
            item.status = TransferStatus.COMPLETED
            item.progress_percent = 100
            item.records_transferred = item.total_records
            item.completed_at = datetime.utcnow()

        return self._transition(name, {TransferStatus.IN_PROGRESS}, apply, EventType.COMPLETED)

    def fail(self, name: str, error: TransferError) -> bool:
        """IN_PROGRESS -> FAILED, keeping committed progress."""
        def apply(item: TransferItem) -> None:
            item.status = TransferStatus.FAILED
            item.error = error
            item.completed_at = datetime.utcnow()

        return self._transition(name, {TransferStatus.IN_PROGRESS}, apply, EventType.FAILED)

    def cancel(self, name: str, pending_only: bool = False) -> bool:
        """PENDING (or IN_PROGRESS unless ``pending_only``) -> CANCELLED."""
        def apply(item: TransferItem) -> None:
            item.status = TransferStatus.CANCELLED
            item.completed_at = datetime.utcnow()

        expected = {TransferStatus.PENDING}
        if not pending_only:
            expected.add(TransferStatus.IN_PROGRESS)
        return self._transition(name, expected, apply, EventType.CANCELLED)

    def reset_for_retry(self, name: str) -> bool:
        """FAILED -> PENDING with the attempt counter incremented."""
        def apply(item: TransferItem) -> None:
            item.status = TransferStatus.PENDING
            item.attempt += 1
            item.error = None
            item.progress_percent = 0
            item.records_transferred = 0
            item.started_at = None
            item.completed_at = None

        return self._transition(name, {TransferStatus.FAILED}, apply, EventType.RETRIED)

    def cancel_pending(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Cancel every PENDING item (or the given ones). Returns the names cancelled."""
        targets = list(names) if names is not None else self.names()
        cancelled = []
        for name in targets:
            if self.cancel(name, pending_only=True):
                cancelled.append(name)
        return cancelled

    def _transition(
        self,
        name: str,
        expected: set,
        apply: Callable[[TransferItem], None],
        event_type: EventType
    ) -> bool:
        with self._lock:
            item = self._items.get(name)
            if item is None:
                logger.debug(f"Rejected {event_type.value} for unknown item {name}")
                return False
            if item.status not in expected:
                logger.debug(
                    f"Rejected {event_type.value} for {name}: status is {item.status.value}"
                )
                return False
            previous = item.status
            apply(item)
            snapshot = item.copy()

        self._notify(event_type, snapshot, previous)
        return True

    def _notify(
        self,
        event_type: EventType,
        item: TransferItem,
        previous: Optional[TransferStatus]
    ) -> None:
        event = StateChangeEvent(
            session_id=self.session_id,
            type=event_type,
            item=item,
            previous_status=previous,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"State change listener failed on {event_type.value} for {item.name}: {e}")
