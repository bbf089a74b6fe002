"""Base row copier interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional
import logging

from ..models.catalog import DatabaseObject
from .translator import ColumnInfo

logger = logging.getLogger(__name__)


@dataclass
class CopyCursor:
    """
    Position of a copy in progress.

    Opaque to the engine: it is only handed back to the copier that
    produced it.
    """
    offset: int = 0  # Rows committed to the target so far
    columns: List[ColumnInfo] = field(default_factory=list)
    insert_sql: Optional[str] = None
    source_connection: Any = None
    source_cursor: Any = None
    closed: bool = False


@dataclass
class BatchResult:
    """Outcome of one copy step."""
    rows_copied: int
    next_cursor: Optional[CopyCursor] = None
    is_final: bool = False


class RowCopier(ABC):
    """
    Base class for per-kind copiers.

    A copier is a stepping function: the worker calls ``copy_batch`` with
    the cursor returned by the previous call (``None`` on the first call)
    until a result is final. Calls are blocking and run in a worker thread.
    """

    def __init__(self, dry_run: bool = False):
        """
        Initialize the copier.

        Args:
            dry_run: If True, read the source but do not write to the target
        """
        self.dry_run = dry_run

    @abstractmethod
    def copy_batch(
        self,
        obj: DatabaseObject,
        cursor: Optional[CopyCursor],
        batch_size: int,
        connection: Any
    ) -> BatchResult:
        """
        Copy the next batch of an object.

        Args:
            obj: Object being transferred
            cursor: Cursor from the previous call, None on the first call
            batch_size: Maximum rows to copy in this step
            connection: Target DB-API connection

        Returns:
            BatchResult with rows copied, next cursor and finality
        """
        pass

    def count_records(self, obj: DatabaseObject) -> Optional[int]:
        """Count source records when the catalog had no estimate."""
        return None

    def create_schema(self, obj: DatabaseObject, connection: Any) -> None:
        """Create the target structure without copying rows."""
        pass

    def close(self, cursor: Optional[CopyCursor]) -> None:
        """Release source resources held by a cursor. Safe to call twice."""
        pass
