"""Source catalog models."""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum


class ObjectKind(str, Enum):
    """Kinds of transferable source objects."""
    TABLE = "table"
    QUERY = "query"  # Stored select query, recreated as a view
    PROCEDURE = "procedure"  # Action/parameter query, recreated as a routine

    @property
    def is_row_bearing(self) -> bool:
        """Whether objects of this kind carry rows copied in batches."""
        return self is ObjectKind.TABLE


@dataclass(frozen=True)
class DatabaseObject:
    """A named schema object listed by a catalog client."""
    name: str
    kind: ObjectKind
    estimated_record_count: Optional[int] = None  # Absent for queries/procedures
    definition: Optional[str] = None  # SQL text for queries/procedures

    def __post_init__(self):
        if not self.name:
            raise ValueError("Database object name is required")
        if self.estimated_record_count is not None and self.estimated_record_count < 0:
            raise ValueError(
                f"Record count for {self.name} must be non-negative, "
                f"got {self.estimated_record_count}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "estimated_record_count": self.estimated_record_count,
            "definition": self.definition,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseObject":
        """Create from dictionary representation."""
        kind = ObjectKind(data.get("kind", "table"))
        count = data.get("estimated_record_count", data.get("record_count"))
        if not kind.is_row_bearing:
            count = None
        return cls(
            name=data["name"],
            kind=kind,
            estimated_record_count=int(count) if count is not None else None,
            definition=data.get("definition"),
        )
