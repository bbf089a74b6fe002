"""Per-kind copiers and dialect translation."""

from typing import Any, Callable, Dict, Optional

from .base import BatchResult, CopyCursor, RowCopier
from .translator import ColumnInfo, DialectTranslator, MySQLTranslator
from .table_copier import TableCopier
from .routine_copier import RoutineCopier
from ..models.catalog import ObjectKind


def build_copiers(
    source_connect: Callable[[], Any],
    translator: Optional[DialectTranslator] = None,
    definitions: Optional[Dict[str, str]] = None,
    dry_run: bool = False,
    drop_existing: bool = True
) -> Dict[ObjectKind, RowCopier]:
    """Build the copier registry covering every object kind."""
    translator = translator or MySQLTranslator()
    routine_copier = RoutineCopier(translator, definitions, dry_run=dry_run)
    return {
        ObjectKind.TABLE: TableCopier(
            source_connect, translator, dry_run=dry_run, drop_existing=drop_existing
        ),
        ObjectKind.QUERY: routine_copier,
        ObjectKind.PROCEDURE: routine_copier,
    }


__all__ = [
    "BatchResult",
    "CopyCursor",
    "RowCopier",
    "ColumnInfo",
    "DialectTranslator",
    "MySQLTranslator",
    "TableCopier",
    "RoutineCopier",
    "build_copiers",
]
