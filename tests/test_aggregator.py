"""Tests for progress aggregation."""

from datetime import datetime

from dbmigrate.models.catalog import ObjectKind
from dbmigrate.models.transfer import (
    SessionStatus,
    TransferItem,
    TransferSession,
    TransferStatus,
)
from dbmigrate.services.aggregator import (
    build_snapshot,
    count_by_status,
    overall_progress,
    session_status,
)


def item(name, status=TransferStatus.PENDING, total=0, percent=0, kind=ObjectKind.TABLE):
    return TransferItem(name=name, kind=kind, status=status, total_records=total, progress_percent=percent)


def started_session(**kwargs):
    return TransferSession(selection=[], started_at=datetime.utcnow(), **kwargs)


class TestOverallProgress:

    def test_empty_is_zero(self):
        assert overall_progress([]) == 0.0

    def test_weighted_by_records(self):
        items = [
            item("Big", TransferStatus.IN_PROGRESS, total=900, percent=50),
            item("Small", TransferStatus.COMPLETED, total=100, percent=100),
        ]
        # (900 * 0.5 + 100 * 1.0) / 1000
        assert overall_progress(items) == 55.0

    def test_zero_total_items_weigh_one(self):
        items = [
            item("Empty", TransferStatus.COMPLETED, total=0),
            item("Query", TransferStatus.PENDING, total=1, kind=ObjectKind.QUERY),
        ]
        assert overall_progress(items) == 50.0

    def test_failed_items_count_partial_progress(self):
        items = [item("A", TransferStatus.FAILED, total=1000, percent=40)]
        assert overall_progress(items) == 40.0


class TestSessionStatus:

    def test_not_started(self):
        session = TransferSession(selection=["A"])
        assert session_status(session, [item("A")]) == SessionStatus.NOT_STARTED

    def test_running_while_items_active(self):
        items = [item("A", TransferStatus.COMPLETED), item("B", TransferStatus.PENDING)]
        assert session_status(started_session(), items) == SessionStatus.RUNNING

    def test_completed(self):
        items = [item("A", TransferStatus.COMPLETED), item("B", TransferStatus.COMPLETED)]
        assert session_status(started_session(), items) == SessionStatus.COMPLETED

    def test_completed_with_errors(self):
        items = [item("A", TransferStatus.COMPLETED), item("B", TransferStatus.FAILED)]
        assert session_status(started_session(), items) == SessionStatus.COMPLETED_WITH_ERRORS

    def test_cancelled_with_nothing_completed(self):
        items = [item("A", TransferStatus.CANCELLED), item("B", TransferStatus.FAILED)]
        session = started_session(cancel_requested=True)
        assert session_status(session, items) == SessionStatus.CANCELLED

    def test_cancelled_after_partial_success(self):
        items = [item("A", TransferStatus.COMPLETED), item("B", TransferStatus.CANCELLED)]
        session = started_session(cancel_requested=True)
        assert session_status(session, items) == SessionStatus.COMPLETED_WITH_ERRORS


class TestSnapshot:

    def test_counts_include_every_status(self):
        counts = count_by_status([item("A", TransferStatus.FAILED)])
        assert counts == {
            "pending": 0,
            "in_progress": 0,
            "completed": 0,
            "failed": 1,
            "cancelled": 0,
        }

    def test_build_snapshot(self):
        session = started_session()
        items = [item("A", TransferStatus.COMPLETED, total=10, percent=100)]
        snapshot = build_snapshot(session, items)

        assert snapshot.session_id == session.id
        assert snapshot.status == SessionStatus.COMPLETED
        assert snapshot.overall_progress == 100.0
        assert snapshot.get_item("A") is items[0]
        assert snapshot.get_item("B") is None

        data = snapshot.to_dict()
        assert data["status"] == "completed"
        assert data["items"][0]["name"] == "A"
