"""Tests for the table and routine copiers against sqlite databases."""

import sqlite3

import pytest

from dbmigrate.copiers import RoutineCopier, TableCopier, build_copiers
from dbmigrate.copiers.translator import MySQLTranslator
from dbmigrate.errors import ConstraintViolation, SchemaCreationError
from dbmigrate.models.catalog import DatabaseObject, ObjectKind


def copy_all(copier, obj, connection, batch_size):
    """Drive a copier to completion, returning rows per batch."""
    batches = []
    cursor = None
    while True:
        result = copier.copy_batch(obj, cursor, batch_size, connection)
        batches.append(result.rows_copied)
        cursor = result.next_cursor
        if result.is_final:
            return batches, cursor


@pytest.fixture
def table_copier(source_connect):
    return TableCopier(source_connect, MySQLTranslator(paramstyle="?"))


class RecordingConnection:
    """Target connection recording executed statements."""

    def __init__(self, fail_on=None):
        self.statements = []
        self.commits = 0
        self.fail_on = fail_on

    def cursor(self):
        return self

    def execute(self, statement, params=None):
        if self.fail_on and self.fail_on in statement:
            raise sqlite3.OperationalError(f"syntax error near {self.fail_on}")
        self.statements.append(statement)

    def commit(self):
        self.commits += 1

    def rollback(self):
        pass

    def close(self):
        pass


class TestTableCopier:

    def test_copies_in_batches(self, table_copier, target_connection):
        obj = DatabaseObject(name="Customers", kind=ObjectKind.TABLE)

        batches, cursor = copy_all(table_copier, obj, target_connection, batch_size=10)

        assert batches == [10, 10, 5]
        assert cursor.offset == 25
        assert cursor.closed
        rows = target_connection.execute("SELECT COUNT(*) FROM `Customers`").fetchone()
        assert rows[0] == 25

    def test_exact_multiple_ends_with_empty_batch(self, table_copier, target_connection):
        obj = DatabaseObject(name="Order Details", kind=ObjectKind.TABLE)

        batches, _ = copy_all(table_copier, obj, target_connection, batch_size=10)

        assert batches == [10, 10, 0]
        rows = target_connection.execute("SELECT COUNT(*) FROM `Order Details`").fetchone()
        assert rows[0] == 20

    def test_count_records(self, table_copier):
        assert table_copier.count_records(DatabaseObject(name="Customers", kind=ObjectKind.TABLE)) == 25
        assert table_copier.count_records(DatabaseObject(name="Empty", kind=ObjectKind.TABLE)) == 0

    def test_create_schema_for_empty_table(self, table_copier, target_connection):
        table_copier.create_schema(DatabaseObject(name="Empty", kind=ObjectKind.TABLE), target_connection)

        rows = target_connection.execute("SELECT COUNT(*) FROM `Empty`").fetchone()
        assert rows[0] == 0

    def test_replaces_existing_table(self, table_copier, target_connection):
        target_connection.execute("CREATE TABLE `Customers` (legacy TEXT)")
        target_connection.execute("INSERT INTO `Customers` VALUES ('old')")
        target_connection.commit()

        copy_all(table_copier, DatabaseObject(name="Customers", kind=ObjectKind.TABLE), target_connection, 100)

        rows = target_connection.execute("SELECT COUNT(*) FROM `Customers`").fetchone()
        assert rows[0] == 25

    def test_constraint_violation_names_row(self, source_connect, target_connection):
        target_connection.execute("CREATE TABLE `Duplicates` (id INTEGER PRIMARY KEY, label TEXT)")
        target_connection.commit()
        copier = TableCopier(source_connect, MySQLTranslator(paramstyle="?"), drop_existing=False)
        obj = DatabaseObject(name="Duplicates", kind=ObjectKind.TABLE)

        with pytest.raises(ConstraintViolation) as exc_info:
            copier.copy_batch(obj, None, 10, target_connection)

        assert exc_info.value.row_id == "2"
        # The rejected batch left nothing behind
        rows = target_connection.execute("SELECT COUNT(*) FROM `Duplicates`").fetchone()
        assert rows[0] == 0

    def test_rejected_schema_is_schema_error(self, table_copier):
        connection = RecordingConnection(fail_on="CREATE TABLE")
        obj = DatabaseObject(name="Customers", kind=ObjectKind.TABLE)

        with pytest.raises(SchemaCreationError):
            table_copier.copy_batch(obj, None, 10, connection)

    def test_dry_run_writes_nothing(self, source_connect):
        copier = TableCopier(source_connect, MySQLTranslator(paramstyle="?"), dry_run=True)
        obj = DatabaseObject(name="Customers", kind=ObjectKind.TABLE)

        batches, _ = copy_all(copier, obj, None, batch_size=10)

        assert sum(batches) == 25

    def test_close_is_idempotent(self, table_copier, target_connection):
        obj = DatabaseObject(name="Customers", kind=ObjectKind.TABLE)
        result = table_copier.copy_batch(obj, None, 5, target_connection)

        table_copier.close(result.next_cursor)
        table_copier.close(result.next_cursor)
        assert result.next_cursor.closed


class TestRoutineCopier:

    def test_creates_view(self):
        copier = RoutineCopier(MySQLTranslator())
        connection = RecordingConnection()
        obj = DatabaseObject(name="TopCustomers", kind=ObjectKind.QUERY, definition="SELECT [Name] FROM [Customers]")

        result = copier.copy_batch(obj, None, 500, connection)

        assert result.rows_copied == 1
        assert result.is_final
        assert connection.statements == ["CREATE OR REPLACE VIEW `TopCustomers` AS SELECT `Name` FROM `Customers`"]
        assert connection.commits == 1

    def test_definition_override(self):
        copier = RoutineCopier(MySQLTranslator(), definitions={"Q": "SELECT 2"})
        connection = RecordingConnection()
        copier.copy_batch(DatabaseObject(name="Q", kind=ObjectKind.QUERY, definition="SELECT 1"), None, 1, connection)
        assert connection.statements == ["CREATE OR REPLACE VIEW `Q` AS SELECT 2"]

    def test_missing_definition(self):
        copier = RoutineCopier(MySQLTranslator())
        with pytest.raises(SchemaCreationError):
            copier.copy_batch(DatabaseObject(name="Q", kind=ObjectKind.QUERY), None, 1, RecordingConnection())

    def test_target_rejects_routine(self, target_connection):
        # sqlite has no CREATE OR REPLACE VIEW
        copier = RoutineCopier(MySQLTranslator())
        obj = DatabaseObject(name="Q", kind=ObjectKind.QUERY, definition="SELECT 1")

        with pytest.raises(SchemaCreationError):
            copier.copy_batch(obj, None, 1, target_connection)

    def test_count_is_one(self):
        copier = RoutineCopier()
        assert copier.count_records(DatabaseObject(name="P", kind=ObjectKind.PROCEDURE)) == 1


def test_build_copiers_covers_every_kind(source_connect):
    copiers = build_copiers(source_connect)
    assert set(copiers) == set(ObjectKind)
    assert isinstance(copiers[ObjectKind.TABLE], TableCopier)
    assert copiers[ObjectKind.QUERY] is copiers[ObjectKind.PROCEDURE]
