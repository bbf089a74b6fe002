"""Transfer engine services."""

from .aggregator import build_snapshot, count_by_status, overall_progress, session_status
from .connections import (
    ConnectionLease,
    NullConnectionProvider,
    PooledConnectionProvider,
    TargetConnectionProvider,
    mysql_connection_factory,
)
from .reporter import LoggingReporter, WebhookReporter, load_snapshot, save_report, save_snapshot
from .scheduler import TransferScheduler
from .state_store import TransferStateStore
from .worker import ObjectTransferWorker

__all__ = [
    "build_snapshot",
    "count_by_status",
    "overall_progress",
    "session_status",
    "ConnectionLease",
    "NullConnectionProvider",
    "PooledConnectionProvider",
    "TargetConnectionProvider",
    "mysql_connection_factory",
    "LoggingReporter",
    "WebhookReporter",
    "load_snapshot",
    "save_report",
    "save_snapshot",
    "TransferScheduler",
    "TransferStateStore",
    "ObjectTransferWorker",
]
