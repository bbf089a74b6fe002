"""Observers of transfer state changes and run reports."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from ..errors import InvalidSnapshot
from ..models.transfer import (
    EventType,
    StateChangeEvent,
    TransferItem,
    TransferSession,
    TransferSnapshot,
)

logger = logging.getLogger(__name__)

NOTIFY_EVENTS = frozenset({
    EventType.COMPLETED,
    EventType.FAILED,
    EventType.CANCELLED,
})


class LoggingReporter:
    """Logs item state changes. Progress is logged at DEBUG level."""

    def __call__(self, event: StateChangeEvent) -> None:
        item = event.item

        if event.type == EventType.PROGRESS:
            logger.debug(
                f"{item.name}: {item.records_transferred}/{item.total_records} "
                f"records ({item.progress_percent}%)"
            )
        elif event.type == EventType.FAILED:
            error = item.error
            row = f" at row {error.row_id}" if error and error.row_id else ""
            logger.warning(
                f"{item.name} failed{row}: "
                f"{error.kind.value if error else 'unknown'} - {error.message if error else ''}"
            )
        elif event.type == EventType.CREATED:
            logger.debug(f"{item.name}: queued ({item.status.value})")
        else:
            logger.info(f"{item.name}: {event.type.value} (attempt {item.attempt})")


class WebhookReporter:
    """
    Posts terminal item events and session summaries to a webhook.

    Requests are sent from a background thread so a slow endpoint never
    holds up a transfer. Delivery failures are logged, not raised.
    """

    def __init__(self, url: str, timeout: float = 10.0, headers: Optional[Dict[str, str]] = None):
        """
        Initialize the reporter.

        Args:
            url: Webhook endpoint receiving JSON POSTs
            timeout: Request timeout in seconds
            headers: Extra request headers (e.g. authorization)
        """
        self.url = url
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers["Content-Type"] = "application/json"
        if headers:
            self._session.headers.update(headers)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webhook")

    def __call__(self, event: StateChangeEvent) -> None:
        if event.type not in NOTIFY_EVENTS:
            return
        self._submit({"event": f"item_{event.type.value}", "data": event.to_dict()})

    def session_finished(self, snapshot: TransferSnapshot) -> None:
        self._submit({"event": "session_finished", "data": snapshot.to_dict()})

    def close(self) -> None:
        """Wait for queued notifications and release the HTTP session."""
        self._executor.shutdown(wait=True)
        self._session.close()

    def _submit(self, payload: Dict[str, Any]) -> None:
        self._executor.submit(self._post, payload)

    def _post(self, payload: Dict[str, Any]) -> None:
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(payload, default=str),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning(f"Webhook delivery of {payload['event']} failed: {e}")


def save_report(
    snapshot: TransferSnapshot,
    output_dir: str,
    session: Optional[TransferSession] = None,
    config: Optional[Dict[str, Any]] = None
) -> Path:
    """
    Save a JSON run report under ``<output_dir>/logs``.

    Returns:
        Path of the written report
    """
    logs_dir = Path(output_dir) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S_%f')
    filepath = logs_dir / f"transfer_report_{snapshot.session_id}_{timestamp}.json"
    report = {
        "session": session.to_dict() if session else {"id": snapshot.session_id},
        "config": config,
        "summary": {
            "status": snapshot.status.value,
            "overall_progress": snapshot.overall_progress,
            "counts": snapshot.counts,
        },
        "items": [item.to_dict() for item in snapshot.items],
    }

    with open(filepath, 'w') as f:
        json.dump(report, f, indent=2, default=str)
    logger.info(f"Saved transfer report to {filepath}")
    return filepath


def save_snapshot(snapshot: TransferSnapshot, path: str) -> Path:
    """Write item states as ``{name: item_state}`` JSON so a later run can resume."""
    filepath = Path(path)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        json.dump({item.name: item.to_dict() for item in snapshot.items}, f, indent=2, default=str)
    logger.info(f"Saved snapshot of session {snapshot.session_id} to {filepath}")
    return filepath


def load_snapshot(path: str) -> Dict[str, TransferItem]:
    """
    Read item states written by ``save_snapshot``.

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidSnapshot: If the file is not a snapshot
    """
    with open(path) as f:
        try:
            data = json.load(f)
            return {name: TransferItem.from_dict({"name": name, **state}) for name, state in data.items()}
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise InvalidSnapshot(f"Snapshot file {path} is not valid: {e}") from e
