"""Copier for stored queries and procedures."""

import logging
from typing import Any, Dict, Optional

from .base import BatchResult, CopyCursor, RowCopier
from .translator import DialectTranslator, MySQLTranslator
from ..errors import SchemaCreationError, classify_error, failure_for
from ..models.catalog import DatabaseObject

logger = logging.getLogger(__name__)


class RoutineCopier(RowCopier):
    """
    Recreates a stored query or procedure on the target.

    The object is one logical unit: a single step creates it and the
    result is always final. Queries become views, procedures become stored
    routines.
    """

    def __init__(
        self,
        translator: Optional[DialectTranslator] = None,
        definitions: Optional[Dict[str, str]] = None,
        dry_run: bool = False
    ):
        """
        Initialize the routine copier.

        Args:
            translator: Dialect translator producing the routine DDL
            definitions: SQL overrides by object name, used before the
                definition carried by the catalog
            dry_run: If True, log the statements instead of executing them
        """
        super().__init__(dry_run=dry_run)
        self.translator = translator or MySQLTranslator()
        self.definitions = definitions or {}

    def count_records(self, obj: DatabaseObject) -> Optional[int]:
        return 1

    def create_schema(self, obj: DatabaseObject, connection: Any) -> None:
        self.copy_batch(obj, None, 1, connection)

    def copy_batch(
        self,
        obj: DatabaseObject,
        cursor: Optional[CopyCursor],
        batch_size: int,
        connection: Any
    ) -> BatchResult:
        definition = self.definitions.get(obj.name) or obj.definition
        if not definition:
            raise SchemaCreationError(f"No SQL definition available for {obj.kind.value} {obj.name}")

        try:
            statements = self.translator.routine_statements(obj, definition)
        except ValueError as e:
            raise SchemaCreationError(f"Cannot translate {obj.name}: {e}") from e

        if self.dry_run:
            for statement in statements:
                logger.info(f"[DRY RUN] {statement}")
            return BatchResult(rows_copied=1, next_cursor=None, is_final=True)

        target_cursor = connection.cursor()
        try:
            for statement in statements:
                target_cursor.execute(statement)
            connection.commit()
        except Exception as e:
            raise failure_for(classify_error(e, schema_phase=True)) from e
        finally:
            target_cursor.close()

        logger.info(f"Created {obj.kind.value} {obj.name} on target")
        return BatchResult(rows_copied=1, next_cursor=None, is_final=True)
