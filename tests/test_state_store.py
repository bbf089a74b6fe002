"""Tests for the transfer state store."""

import logging

import pytest

from conftest import EventRecorder, query, table
from dbmigrate.models.transfer import (
    ErrorKind,
    EventType,
    TransferError,
    TransferItem,
    TransferStatus,
)
from dbmigrate.services.state_store import TransferStateStore, initial_total


@pytest.fixture
def store():
    store = TransferStateStore("session-1")
    store.add(table("Customers", 1000))
    store.add(query("TopCustomers"))
    return store


class TestItems:

    def test_initial_totals(self, store):
        assert store.get("Customers").total_records == 1000
        assert store.get("TopCustomers").total_records == 1
        assert initial_total(table("Unknown")) == 0

    def test_items_in_insertion_order(self, store):
        assert [i.name for i in store.items()] == ["Customers", "TopCustomers"]
        assert len(store) == 2
        assert "Customers" in store

    def test_reads_return_copies(self, store):
        item = store.get("Customers")
        item.status = TransferStatus.COMPLETED
        assert store.status_of("Customers") == TransferStatus.PENDING

    def test_duplicate_add_rejected(self, store):
        with pytest.raises(ValueError):
            store.add(table("Customers"))

    def test_add_restored_item(self):
        store = TransferStateStore("s")
        restored = TransferItem(name="Orders", status=TransferStatus.COMPLETED, total_records=5,
                                records_transferred=5, progress_percent=100)
        store.add(table("Orders", 5), restored)
        assert store.status_of("Orders") == TransferStatus.COMPLETED


class TestTransitions:

    def test_begin_only_from_pending(self, store):
        assert store.begin("Customers", 1000) is True
        assert store.begin("Customers", 1000) is False
        assert store.get("Customers").started_at is not None

    def test_progress_is_clamped_and_monotonic(self, store):
        store.begin("Customers", 1000)

        assert store.record_progress("Customers", 333)
        assert store.get("Customers").progress_percent == 33

        store.record_progress("Customers", 100)
        item = store.get("Customers")
        assert item.progress_percent == 33
        assert item.records_transferred == 333

        store.record_progress("Customers", 5000)
        item = store.get("Customers")
        assert item.records_transferred == 1000
        assert item.progress_percent == 100

    def test_progress_rejected_when_not_running(self, store):
        assert store.record_progress("Customers", 10) is False
        assert store.get("Customers").records_transferred == 0

    def test_set_total_clamps_records(self, store):
        store.begin("Customers", 1000)
        store.record_progress("Customers", 600)
        store.set_total("Customers", 400)
        assert store.get("Customers").records_transferred == 400

    def test_complete_fills_progress(self, store):
        store.begin("Customers", 1000)
        store.record_progress("Customers", 500)
        assert store.complete("Customers")

        item = store.get("Customers")
        assert item.status == TransferStatus.COMPLETED
        assert item.progress_percent == 100
        assert item.records_transferred == 1000
        assert item.completed_at is not None

    def test_fail_keeps_committed_progress(self, store):
        store.begin("Customers", 1000)
        store.record_progress("Customers", 400)
        error = TransferError(kind=ErrorKind.CONNECTION_LOST, message="gone")
        assert store.fail("Customers", error)

        item = store.get("Customers")
        assert item.status == TransferStatus.FAILED
        assert item.records_transferred == 400
        assert item.progress_percent == 40
        assert item.error == error

    def test_terminal_states_are_final(self, store):
        store.begin("Customers", 1000)
        store.complete("Customers")

        assert store.fail("Customers", TransferError(kind=ErrorKind.UNEXPECTED, message="x")) is False
        assert store.cancel("Customers") is False
        assert store.reset_for_retry("Customers") is False
        assert store.begin("Customers", 1000) is False
        assert store.status_of("Customers") == TransferStatus.COMPLETED

    def test_reset_for_retry_from_failed(self, store):
        store.begin("Customers", 1000)
        store.record_progress("Customers", 300)
        store.fail("Customers", TransferError(kind=ErrorKind.TIMEOUT, message="slow"))

        assert store.reset_for_retry("Customers")
        item = store.get("Customers")
        assert item.status == TransferStatus.PENDING
        assert item.attempt == 2
        assert item.error is None
        assert item.records_transferred == 0
        assert item.progress_percent == 0

    def test_cancel_pending_leaves_running_items(self, store):
        store.begin("Customers", 1000)

        assert store.cancel_pending() == ["TopCustomers"]
        assert store.status_of("Customers") == TransferStatus.IN_PROGRESS
        assert store.status_of("TopCustomers") == TransferStatus.CANCELLED

    def test_unknown_item_rejected(self, store):
        assert store.begin("Nope", 1) is False


class TestNotifications:

    def test_events_for_accepted_transitions(self, store):
        recorder = EventRecorder()
        store.subscribe(recorder)

        store.begin("Customers", 1000)
        store.begin("Customers", 1000)
        store.record_progress("Customers", 10)
        store.complete("Customers")

        assert [e.type for e in recorder.events] == [
            EventType.STARTED,
            EventType.PROGRESS,
            EventType.COMPLETED,
        ]
        started = recorder.events[0]
        assert started.session_id == "session-1"
        assert started.previous_status == TransferStatus.PENDING
        assert started.item.status == TransferStatus.IN_PROGRESS

    def test_listener_errors_are_swallowed(self, store, caplog):
        def broken(event):
            raise RuntimeError("reporter down")

        recorder = EventRecorder()
        store.subscribe(broken)
        store.subscribe(recorder)

        with caplog.at_level(logging.ERROR):
            assert store.begin("Customers", 1000) is True

        assert len(recorder.events) == 1
        assert "reporter down" in caplog.text

    def test_unsubscribe(self, store):
        recorder = EventRecorder()
        store.subscribe(recorder)
        store.unsubscribe(recorder)
        store.begin("Customers", 1000)
        assert recorder.events == []
