"""Tests for catalog clients and selection resolution."""

import json

import pytest

from dbmigrate.catalog import StaticCatalogClient
from dbmigrate.catalog.odbc_catalog import build_connection_string
from dbmigrate.errors import InvalidSelection, SourceUnavailable
from dbmigrate.models.catalog import DatabaseObject, ObjectKind


@pytest.fixture
def catalog():
    return StaticCatalogClient.from_dicts({
        "tables": [
            {"name": "Customers", "record_count": 1250},
            {"name": "Orders"},
        ],
        "queries": [{"name": "TopCustomers", "definition": "SELECT TOP 10 * FROM [Customers]"}],
        "procedures": [{"name": "PurgeOrders", "record_count": 5}],
    })


class TestStaticCatalog:

    def test_lists_objects_in_order(self, catalog):
        objects = catalog.list_objects()
        assert [o.name for o in objects] == ["Customers", "Orders", "TopCustomers", "PurgeOrders"]
        assert objects[0].estimated_record_count == 1250
        assert objects[1].estimated_record_count is None

    def test_routines_have_no_record_count(self, catalog):
        assert catalog.get_object("PurgeOrders").estimated_record_count is None
        assert catalog.get_object("PurgeOrders").kind == ObjectKind.PROCEDURE

    def test_list_by_kind(self, catalog):
        assert [o.name for o in catalog.list_by_kind(ObjectKind.QUERY)] == ["TopCustomers"]

    def test_duplicate_names_keep_first(self):
        catalog = StaticCatalogClient([
            DatabaseObject(name="A", kind=ObjectKind.TABLE, estimated_record_count=1),
            DatabaseObject(name="A", kind=ObjectKind.QUERY),
        ])
        assert len(catalog.list_objects()) == 1
        assert catalog.get_object("A").kind == ObjectKind.TABLE

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([{"name": "Customers", "kind": "table", "estimated_record_count": 3}]))

        catalog = StaticCatalogClient.from_json_file(str(path))

        assert catalog.get_object("Customers").estimated_record_count == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            StaticCatalogClient.from_json_file(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{not json")
        with pytest.raises(SourceUnavailable):
            StaticCatalogClient.from_json_file(str(path))


class TestResolve:

    def test_resolves_in_selection_order(self, catalog):
        objects = catalog.resolve(["TopCustomers", "Customers"])
        assert [o.name for o in objects] == ["TopCustomers", "Customers"]

    def test_empty_selection(self, catalog):
        with pytest.raises(InvalidSelection):
            catalog.resolve([])

    def test_duplicates(self, catalog):
        with pytest.raises(InvalidSelection) as exc_info:
            catalog.resolve(["Customers", "Orders", "Customers"])
        assert exc_info.value.duplicates == ["Customers"]

    def test_unknown_names(self, catalog):
        with pytest.raises(InvalidSelection) as exc_info:
            catalog.resolve(["Customers", "Invoices"])
        assert exc_info.value.unknown == ["Invoices"]


class TestDatabaseObject:

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            DatabaseObject(name="T", kind=ObjectKind.TABLE, estimated_record_count=-1)

    def test_name_required(self):
        with pytest.raises(ValueError):
            DatabaseObject(name="", kind=ObjectKind.TABLE)


class TestConnectionString:

    def test_access_file(self):
        assert build_connection_string("C:\\data\\Northwind.accdb") == (
            "DRIVER={Microsoft Access Driver (*.mdb, *.accdb)};DBQ=C:\\data\\Northwind.accdb;"
        )

    def test_connection_string_passthrough(self):
        assert build_connection_string("DSN=legacy") == "DSN=legacy"
