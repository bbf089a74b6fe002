"""Catalog client backed by a fixed object list or a JSON catalog file."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .base import BaseCatalogClient
from ..errors import SourceUnavailable
from ..models.catalog import DatabaseObject

logger = logging.getLogger(__name__)


class StaticCatalogClient(BaseCatalogClient):
    """
    Catalog client over a known list of objects.

    Used for dry runs against an exported catalog and as the test seam for
    the orchestrator. A JSON catalog file is either a list of objects or a
    mapping with ``tables``, ``queries`` and ``procedures`` lists.
    """

    def __init__(self, objects: Iterable[DatabaseObject]):
        super().__init__()
        self._source_objects = list(objects)

    def fetch_objects(self) -> List[DatabaseObject]:
        return list(self._source_objects)

    @classmethod
    def from_dicts(cls, data: Any) -> "StaticCatalogClient":
        """Create from a list of dicts or a grouped mapping."""
        if isinstance(data, dict):
            entries: List[Dict[str, Any]] = []
            for group, kind in (("tables", "table"), ("queries", "query"), ("procedures", "procedure")):
                for entry in data.get(group, []):
                    entries.append({"kind": kind, **entry})
        else:
            entries = list(data)

        return cls(DatabaseObject.from_dict(entry) for entry in entries)

    @classmethod
    def from_json_file(cls, path: str) -> "StaticCatalogClient":
        """Load a catalog from a JSON file."""
        file_path = Path(path)
        if not file_path.exists():
            raise SourceUnavailable(f"Catalog file not found: {path}")

        try:
            with open(file_path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise SourceUnavailable(f"Catalog file is not valid JSON: {path}: {e}") from e

        client = cls.from_dicts(data)
        logger.info(f"Loaded catalog from {path}")
        return client
