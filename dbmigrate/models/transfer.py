"""Transfer execution models."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import uuid

from dateutil import parser as date_parser

from .catalog import ObjectKind


class TransferStatus(str, Enum):
    """Status of a single transfer item."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TransferStatus.COMPLETED,
    TransferStatus.FAILED,
    TransferStatus.CANCELLED,
})


class SessionStatus(str, Enum):
    """Overall status of a transfer session."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"


class ErrorKind(str, Enum):
    """Classification carried on a failed item."""
    SCHEMA_CREATION = "schema_creation_error"  # Target rejected the translated schema
    CONNECTION_LOST = "connection_lost"  # Network/socket failure mid-transfer
    TIMEOUT = "timeout"  # A batch exceeded its allotted time
    CONSTRAINT_VIOLATION = "constraint_violation"  # Uniqueness, foreign key, ...
    UNEXPECTED = "unexpected_error"

    @property
    def retryable(self) -> bool:
        """Whether the scheduler may retry this kind automatically."""
        return self in (ErrorKind.CONNECTION_LOST, ErrorKind.TIMEOUT)


class EventType(str, Enum):
    """Kinds of state change emitted by the state store."""
    CREATED = "created"
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETRIED = "retried"


@dataclass(frozen=True)
class TransferError:
    """Error details stored on a failed item."""
    kind: ErrorKind
    message: str
    row_id: Optional[str] = None  # Offending row for constraint violations
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "row_id": self.row_id,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferError":
        """Create from dictionary representation."""
        occurred_at = data.get("occurred_at")
        return cls(
            kind=ErrorKind(data.get("kind", ErrorKind.UNEXPECTED.value)),
            message=data.get("message", ""),
            row_id=data.get("row_id"),
            occurred_at=date_parser.isoparse(occurred_at) if occurred_at else datetime.utcnow(),
        )


@dataclass
class TransferItem:
    """The tracked unit of work, one per selected object."""
    name: str
    kind: ObjectKind = ObjectKind.TABLE
    status: TransferStatus = TransferStatus.PENDING
    progress_percent: int = 0
    records_transferred: int = 0
    total_records: int = 0
    error: Optional[TransferError] = None
    attempt: int = 1
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def copy(self) -> "TransferItem":
        """Return a detached copy safe to hand to readers."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "status": self.status.value,
            "progress_percent": self.progress_percent,
            "records_transferred": self.records_transferred,
            "total_records": self.total_records,
            "error": self.error.to_dict() if self.error else None,
            "attempt": self.attempt,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferItem":
        """Create from dictionary representation."""
        error = data.get("error")
        started_at = data.get("started_at")
        completed_at = data.get("completed_at")
        return cls(
            name=data["name"],
            kind=ObjectKind(data.get("kind", "table")),
            status=TransferStatus(data.get("status", "pending")),
            progress_percent=data.get("progress_percent", 0),
            records_transferred=data.get("records_transferred", 0),
            total_records=data.get("total_records", 0),
            error=TransferError.from_dict(error) if error else None,
            attempt=data.get("attempt", 1),
            started_at=date_parser.isoparse(started_at) if started_at else None,
            completed_at=date_parser.isoparse(completed_at) if completed_at else None,
        )

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class TransferSession:
    """One end-to-end migration run over a fixed selection of objects."""
    selection: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    status: SessionStatus = SessionStatus.NOT_STARTED
    cancel_requested: bool = False
    dry_run: bool = False

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "selection": list(self.selection),
            "status": self.status.value,
            "cancel_requested": self.cancel_requested,
            "dry_run": self.dry_run,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class StateChangeEvent:
    """Notification emitted for every accepted state store mutation."""
    session_id: str
    type: EventType
    item: TransferItem
    previous_status: Optional[TransferStatus] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "session_id": self.session_id,
            "type": self.type.value,
            "item": self.item.to_dict(),
            "previous_status": self.previous_status.value if self.previous_status else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TransferSnapshot:
    """Read-only, point-in-time view of a session."""
    session_id: str
    status: SessionStatus
    overall_progress: float
    items: List[TransferItem] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    taken_at: datetime = field(default_factory=datetime.utcnow)

    def get_item(self, name: str) -> Optional[TransferItem]:
        """Get an item by object name."""
        for item in self.items:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "overall_progress": self.overall_progress,
            "items": [i.to_dict() for i in self.items],
            "counts": self.counts,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "taken_at": self.taken_at.isoformat(),
        }
