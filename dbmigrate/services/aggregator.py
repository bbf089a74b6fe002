"""Progress aggregation over a session's items."""

from typing import Dict, Iterable, List

from ..models.transfer import (
    SessionStatus,
    TransferItem,
    TransferSession,
    TransferSnapshot,
    TransferStatus,
)

ACTIVE_STATUSES = (TransferStatus.PENDING, TransferStatus.IN_PROGRESS)


def item_weight(item: TransferItem) -> int:
    """Weight of an item in the overall percentage."""
    return max(item.total_records, 1)


def item_completion(item: TransferItem) -> float:
    """Fraction of an item that is done, 0.0 to 1.0."""
    if item.status == TransferStatus.COMPLETED:
        return 1.0
    return min(max(item.progress_percent, 0), 100) / 100.0


def overall_progress(items: Iterable[TransferItem]) -> float:
    """
    Record-weighted overall progress, 0 to 100.

    Large tables dominate proportionally to their size rather than every
    item counting equally.
    """
    total_weight = 0
    done = 0.0
    for item in items:
        weight = item_weight(item)
        total_weight += weight
        done += weight * item_completion(item)

    if total_weight == 0:
        return 0.0
    return round(100.0 * done / total_weight, 2)


def count_by_status(items: Iterable[TransferItem]) -> Dict[str, int]:
    """Item counts for every status, zeros included."""
    counts = {status.value: 0 for status in TransferStatus}
    for item in items:
        counts[item.status.value] += 1
    return counts


def session_status(session: TransferSession, items: List[TransferItem]) -> SessionStatus:
    """Derive the session status from its items."""
    if session.started_at is None:
        return SessionStatus.NOT_STARTED

    if any(item.status in ACTIVE_STATUSES for item in items):
        return SessionStatus.RUNNING

    if items and all(item.status == TransferStatus.COMPLETED for item in items):
        return SessionStatus.COMPLETED

    if session.cancel_requested and not any(item.status == TransferStatus.COMPLETED for item in items):
        return SessionStatus.CANCELLED

    return SessionStatus.COMPLETED_WITH_ERRORS


def build_snapshot(session: TransferSession, items: List[TransferItem]) -> TransferSnapshot:
    """Point-in-time snapshot of a session."""
    return TransferSnapshot(
        session_id=session.id,
        status=session_status(session, items),
        overall_progress=overall_progress(items),
        items=items,
        counts=count_by_status(items),
        started_at=session.started_at,
        completed_at=session.completed_at,
    )
