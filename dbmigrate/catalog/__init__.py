"""Catalog clients for source databases."""

from .base import BaseCatalogClient
from .static_catalog import StaticCatalogClient
from .odbc_catalog import ODBCCatalogClient, open_source_connection

__all__ = [
    "BaseCatalogClient",
    "StaticCatalogClient",
    "ODBCCatalogClient",
    "open_source_connection",
]
