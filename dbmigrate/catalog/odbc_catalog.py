"""Catalog client for Access databases opened through ODBC."""

import logging
from typing import Any, Dict, List, Optional

from .base import BaseCatalogClient
from ..errors import MissingDependencyError, SourceUnavailable
from ..models.catalog import DatabaseObject, ObjectKind

logger = logging.getLogger(__name__)

ACCESS_DRIVER = "Microsoft Access Driver (*.mdb, *.accdb)"
ACCESS_EXTENSIONS = (".mdb", ".accdb")


def build_connection_string(source: str, driver: str = ACCESS_DRIVER) -> str:
    """Turn an Access file path into an ODBC connection string."""
    if source.lower().endswith(ACCESS_EXTENSIONS):
        return f"DRIVER={{{driver}}};DBQ={source};"
    return source


def open_source_connection(source: str, readonly: bool = True) -> Any:
    """
    Open a DB-API connection to the source database.

    Args:
        source: ODBC connection string or path to an .mdb/.accdb file
        readonly: Open the connection read-only

    Returns:
        pyodbc connection

    Raises:
        SourceUnavailable: If the database cannot be opened
    """
    try:
        import pyodbc
    except ImportError as e:
        raise MissingDependencyError("pyodbc", "reading Access databases") from e

    try:
        return pyodbc.connect(build_connection_string(source), readonly=readonly, autocommit=True)
    except pyodbc.Error as e:
        raise SourceUnavailable(f"Cannot open source database {source}: {e}") from e


class ODBCCatalogClient(BaseCatalogClient):
    """
    Lists tables, stored queries and procedures of an Access database.

    The Access ODBC driver reports user tables as ``TABLE``, saved select
    queries as ``VIEW`` and action/parameter queries as procedures. System
    tables (``MSys*``) are skipped.
    """

    def __init__(
        self,
        source: str,
        count_records: bool = True,
        definitions: Optional[Dict[str, str]] = None
    ):
        """
        Initialize the catalog client.

        Args:
            source: ODBC connection string or path to an .mdb/.accdb file
            count_records: Run COUNT(*) per table for record estimates
            definitions: Optional SQL text for queries/procedures by name
        """
        super().__init__()
        self.source = source
        self.count_records = count_records
        self.definitions = definitions or {}

    def fetch_objects(self) -> List[DatabaseObject]:
        connection = open_source_connection(self.source)
        try:
            cursor = connection.cursor()
            objects = []

            table_names = [row.table_name for row in cursor.tables(tableType="TABLE")]
            for name in table_names:
                if name.startswith("MSys"):
                    continue
                objects.append(DatabaseObject(
                    name=name,
                    kind=ObjectKind.TABLE,
                    estimated_record_count=self._count(cursor, name) if self.count_records else None,
                ))

            for row in cursor.tables(tableType="VIEW"):
                objects.append(DatabaseObject(
                    name=row.table_name,
                    kind=ObjectKind.QUERY,
                    definition=self.definitions.get(row.table_name),
                ))

            view_names = {o.name for o in objects}
            for row in cursor.procedures():
                name = row.procedure_name
                if name in view_names:
                    continue
                objects.append(DatabaseObject(
                    name=name,
                    kind=ObjectKind.PROCEDURE,
                    definition=self.definitions.get(name),
                ))

            return objects

        except SourceUnavailable:
            raise
        except Exception as e:
            raise SourceUnavailable(f"Failed to read catalog of {self.source}: {e}") from e
        finally:
            connection.close()

    def _count(self, cursor: Any, table: str) -> Optional[int]:
        """Count rows of a table, or None when the count fails."""
        try:
            cursor.execute(f"SELECT COUNT(*) FROM [{table}]")
            return int(cursor.fetchone()[0])
        except Exception as e:
            logger.warning(f"Could not count rows of {table}: {e}")
            return None
