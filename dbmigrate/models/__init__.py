"""Data models for the transfer engine."""

from .catalog import (
    DatabaseObject,
    ObjectKind,
)
from .config import (
    TargetConnectionConfig,
    RetryPolicy,
    TransferConfig,
)
from .transfer import (
    TransferStatus,
    SessionStatus,
    ErrorKind,
    EventType,
    TransferError,
    TransferItem,
    TransferSession,
    StateChangeEvent,
    TransferSnapshot,
    TERMINAL_STATUSES,
)

__all__ = [
    "DatabaseObject",
    "ObjectKind",
    "TargetConnectionConfig",
    "RetryPolicy",
    "TransferConfig",
    "TransferStatus",
    "SessionStatus",
    "ErrorKind",
    "EventType",
    "TransferError",
    "TransferItem",
    "TransferSession",
    "StateChangeEvent",
    "TransferSnapshot",
    "TERMINAL_STATUSES",
]
