"""Batch copier for source tables."""

import logging
from typing import Any, Callable, List, Optional, Sequence

from .base import BatchResult, CopyCursor, RowCopier
from .translator import ColumnInfo, DialectTranslator, MySQLTranslator
from ..errors import (
    ConstraintViolation,
    classify_error,
    failure_for,
)
from ..models.catalog import DatabaseObject
from ..models.transfer import ErrorKind

logger = logging.getLogger(__name__)


class TableCopier(RowCopier):
    """
    Copies a table's structure and rows to the target.

    Each object gets its own source connection, opened on the first batch
    and held in the cursor until the copy ends. Every batch is inserted and
    committed as one transaction, so the cursor offset only ever counts
    committed rows.
    """

    def __init__(
        self,
        source_connect: Callable[[], Any],
        translator: Optional[DialectTranslator] = None,
        dry_run: bool = False,
        drop_existing: bool = True
    ):
        """
        Initialize the table copier.

        Args:
            source_connect: Factory returning a new source DB-API connection
            translator: Dialect translator for DDL and row values
            dry_run: If True, read rows but skip target writes
            drop_existing: Drop a same-named target table before creating it
        """
        super().__init__(dry_run=dry_run)
        self.source_connect = source_connect
        self.translator = translator or MySQLTranslator()
        self.drop_existing = drop_existing

    def _select_sql(self, obj: DatabaseObject) -> str:
        return f"SELECT * FROM [{obj.name}]"

    def count_records(self, obj: DatabaseObject) -> Optional[int]:
        connection = self.source_connect()
        try:
            cursor = connection.cursor()
            cursor.execute(f"SELECT COUNT(*) FROM [{obj.name}]")
            return int(cursor.fetchone()[0])
        finally:
            connection.close()

    def create_schema(self, obj: DatabaseObject, connection: Any) -> None:
        cursor = self._open(obj)
        try:
            self._create_target_table(obj, cursor.columns, connection)
        finally:
            self.close(cursor)

    def copy_batch(
        self,
        obj: DatabaseObject,
        cursor: Optional[CopyCursor],
        batch_size: int,
        connection: Any
    ) -> BatchResult:
        opened = cursor is None
        if opened:
            cursor = self._open(obj)

        try:
            if opened:
                self._create_target_table(obj, cursor.columns, connection)
                cursor.insert_sql = self.translator.insert_statement(obj.name, cursor.columns)

            rows = cursor.source_cursor.fetchmany(batch_size)

            if rows and not self.dry_run:
                self._insert_rows(obj, cursor.insert_sql, rows, connection)
        except Exception:
            # Nobody else holds a cursor opened by this call
            if opened:
                self.close(cursor)
            raise

        cursor.offset += len(rows)
        is_final = len(rows) < batch_size
        logger.debug(f"Copied {len(rows)} rows of {obj.name} (offset {cursor.offset})")

        if is_final:
            self.close(cursor)

        return BatchResult(rows_copied=len(rows), next_cursor=cursor, is_final=is_final)

    def close(self, cursor: Optional[CopyCursor]) -> None:
        if cursor is None or cursor.closed:
            return
        cursor.closed = True
        for resource in (cursor.source_cursor, cursor.source_connection):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as e:
                logger.warning(f"Failed to close source resource: {e}")

    def _open(self, obj: DatabaseObject) -> CopyCursor:
        """Open a source connection and start reading the table."""
        source_connection = self.source_connect()
        try:
            source_cursor = source_connection.cursor()
            source_cursor.execute(self._select_sql(obj))
            columns = [ColumnInfo.from_description(d) for d in source_cursor.description]
        except Exception:
            source_connection.close()
            raise

        return CopyCursor(
            columns=columns,
            source_connection=source_connection,
            source_cursor=source_cursor,
        )

    def _create_target_table(
        self,
        obj: DatabaseObject,
        columns: List[ColumnInfo],
        connection: Any
    ) -> None:
        """Create the target table; any rejection is a schema creation error."""
        try:
            statements = self.translator.create_table_statements(
                obj.name, columns, drop_existing=self.drop_existing
            )
        except ValueError as e:
            raise failure_for(classify_error(e, schema_phase=True)) from e

        if self.dry_run:
            for statement in statements:
                logger.info(f"[DRY RUN] {statement}")
            return

        target_cursor = connection.cursor()
        try:
            for statement in statements:
                target_cursor.execute(statement)
            connection.commit()
        except Exception as e:
            _rollback(connection)
            raise failure_for(classify_error(e, schema_phase=True)) from e
        finally:
            target_cursor.close()

    def _insert_rows(
        self,
        obj: DatabaseObject,
        insert_sql: str,
        rows: Sequence[Sequence[Any]],
        connection: Any
    ) -> None:
        """Insert one batch as a single transaction."""
        values = [self.translator.convert_row(r) for r in rows]
        target_cursor = connection.cursor()
        try:
            target_cursor.executemany(insert_sql, values)
            connection.commit()
        except Exception as e:
            _rollback(connection)
            error = classify_error(e)
            if error.kind == ErrorKind.CONSTRAINT_VIOLATION:
                row_id = self._find_offending_row(insert_sql, values, connection)
                raise ConstraintViolation(f"{obj.name}: {error.message}", row_id=row_id) from e
            raise
        finally:
            target_cursor.close()

    def _find_offending_row(
        self,
        insert_sql: str,
        values: List[Sequence[Any]],
        connection: Any
    ) -> Optional[str]:
        """
        Replay a rejected batch row by row to identify the first bad row.

        The replay is always rolled back. Returns the first column value of
        the offending row, usually its key.
        """
        target_cursor = connection.cursor()
        try:
            for row in values:
                try:
                    target_cursor.execute(insert_sql, row)
                except Exception as e:
                    if classify_error(e).kind == ErrorKind.CONSTRAINT_VIOLATION:
                        return str(row[0]) if row else None
                    return None
            return None
        finally:
            _rollback(connection)
            target_cursor.close()


def _rollback(connection: Any) -> None:
    try:
        connection.rollback()
    except Exception as e:
        logger.warning(f"Rollback failed: {e}")
