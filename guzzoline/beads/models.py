"""
Data models for beads.

Defines the issue-tracker record and how it is read from tracker JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Mapping, Optional

from guzzoline.core.errors import InvalidInput
from guzzoline.core.timestamps import parse_timestamp


@dataclass(frozen=True)
class Bead:
    """Immutable snapshot of one issue-tracker record.

    ``parent`` is a reference to an epic or convoy id, not ownership.
    """
    id: str
    type: str
    status: str
    updated_at: datetime
    parent: Optional[str] = None
    depends_on: FrozenSet[str] = field(default_factory=frozenset)
    title: Optional[str] = None

    def __post_init__(self):
        """Validate required identity fields."""
        if not self.id:
            raise InvalidInput("Bead id is required")
        if not isinstance(self.type, str) or not self.type:
            raise InvalidInput(f"Bead {self.id} has no type")
        if not isinstance(self.status, str) or not self.status:
            raise InvalidInput(f"Bead {self.id} has no status")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Bead":
        """Build a bead from tracker JSON.

        Accepts both the tracker's snake_case keys (``issue_type``,
        ``updated_at``) and camelCase variants. An empty parent means none.

        Raises:
            InvalidInput: If required fields are missing or malformed
        """
        if not isinstance(raw, Mapping):
            raise InvalidInput(f"Bead record must be a mapping, got {type(raw).__name__}")

        bead_id = raw.get("id")
        if not bead_id:
            raise InvalidInput("Bead record missing id")
        bead_id = str(bead_id)

        updated = raw.get("updated_at", raw.get("updatedAt"))
        if updated is None:
            raise InvalidInput(f"Bead {bead_id} missing updated_at")

        depends = raw.get("depends_on", raw.get("dependsOn", raw.get("dependencies"))) or ()
        if (not isinstance(depends, (list, tuple, set, frozenset))
                or not all(isinstance(dep, (str, Mapping)) for dep in depends)):
            raise InvalidInput(f"Bead {bead_id} has malformed dependencies")

        return cls(
            id=bead_id,
            type=raw.get("issue_type", raw.get("type")),
            status=raw.get("status"),
            updated_at=parse_timestamp(updated, f"updated_at of bead {bead_id}"),
            parent=raw.get("parent") or None,
            depends_on=frozenset(_dependency_id(dep) for dep in depends),
            title=raw.get("title"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "updated_at": self.updated_at.isoformat(),
            "parent": self.parent,
            "depends_on": sorted(self.depends_on),
            "title": self.title,
        }


def _dependency_id(dep: Any) -> str:
    # The tracker reports dependencies either as ids or as {"id": ...} objects
    if isinstance(dep, Mapping):
        dep_id = dep.get("depends_on_id") or dep.get("id")
        if not dep_id:
            raise InvalidInput(f"Dependency entry without id: {dict(dep)!r}")
        return str(dep_id)
    return dep
