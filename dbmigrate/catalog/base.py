"""Base catalog client interface."""

from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, Iterable, List, Optional
import logging

from ..errors import InvalidSelection
from ..models.catalog import DatabaseObject, ObjectKind

logger = logging.getLogger(__name__)


class BaseCatalogClient(ABC):
    """
    Base class for catalog clients.

    Catalog clients list the transferable objects (tables, stored queries,
    procedures) of a source database. The listing is cached after the first
    call; call ``refresh`` to query the source again.
    """

    def __init__(self):
        self._objects: Optional[Dict[str, DatabaseObject]] = None

    @abstractmethod
    def fetch_objects(self) -> List[DatabaseObject]:
        """
        Query the source for its objects.

        Returns:
            List of DatabaseObject descriptors

        Raises:
            SourceUnavailable: If the source cannot be opened
        """
        pass

    def list_objects(self) -> List[DatabaseObject]:
        """List all transferable objects, in catalog order."""
        if self._objects is None:
            self.refresh()
        return list(self._objects.values())

    def refresh(self) -> int:
        """Re-read the catalog. Returns the number of objects listed."""
        objects: Dict[str, DatabaseObject] = {}
        for obj in self.fetch_objects():
            if obj.name in objects:
                logger.warning(f"Duplicate object name in catalog, keeping first: {obj.name}")
                continue
            objects[obj.name] = obj
        self._objects = objects
        logger.info(f"Catalog lists {len(objects)} objects")
        return len(objects)

    def get_object(self, name: str) -> Optional[DatabaseObject]:
        """Get an object by name."""
        if self._objects is None:
            self.refresh()
        return self._objects.get(name)

    def list_by_kind(self, kind: ObjectKind) -> List[DatabaseObject]:
        """List objects of a single kind."""
        return [o for o in self.list_objects() if o.kind == kind]

    def resolve(self, names: Iterable[str]) -> List[DatabaseObject]:
        """
        Resolve a selection of names to catalog objects.

        Args:
            names: Object names in selection order

        Returns:
            Objects in the same order

        Raises:
            InvalidSelection: If the selection is empty, has duplicates or
                names an object the catalog does not know
        """
        names = list(names)
        if not names:
            raise InvalidSelection("Selection is empty")

        duplicates = [n for n, count in Counter(names).items() if count > 1]
        if duplicates:
            raise InvalidSelection(
                f"Selection contains duplicates: {', '.join(sorted(duplicates))}",
                duplicates=duplicates,
            )

        unknown = [n for n in names if self.get_object(n) is None]
        if unknown:
            raise InvalidSelection(
                f"Unknown objects: {', '.join(unknown)}",
                unknown=unknown,
            )

        return [self.get_object(n) for n in names]
