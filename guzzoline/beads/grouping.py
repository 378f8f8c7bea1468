"""
Grouping of beads by convoy association.

The partition is stable: groups appear in first-seen order of their
convoy id, beads keep their input order, and ungrouped beads come last.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from guzzoline.core.timestamps import as_utc, utc_now

from .classifier import STALE_COMMUNICATION_THRESHOLD, is_stale
from .models import Bead

# Statuses that still need action from someone
PENDING_STATUSES = frozenset({"open", "hooked", "in_progress"})


@dataclass(frozen=True)
class ConvoyGroup:
    """Beads sharing one convoy id; ``convoy_id`` is None for ungrouped beads."""
    convoy_id: Optional[str]
    beads: Tuple[Any, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "convoy_id": self.convoy_id,
            "beads": [bead.to_dict() if isinstance(bead, Bead) else bead for bead in self.beads],
        }


def _parent_of(bead: Any) -> Optional[str]:
    parent = bead.get("parent") if isinstance(bead, Mapping) else getattr(bead, "parent", None)
    return parent or None


def group_by_convoy(beads: Iterable[Any]) -> List[ConvoyGroup]:
    """Partition beads by their parent reference.

    Works on Bead objects and on raw mappings with a ``parent`` key. A
    missing or empty parent puts the bead in the ungrouped (None) group,
    which is emitted last and only when non-empty.
    """
    grouped: Dict[Optional[str], List[Any]] = {}
    for bead in beads:
        grouped.setdefault(_parent_of(bead), []).append(bead)

    groups = [
        ConvoyGroup(convoy_id=convoy_id, beads=tuple(members))
        for convoy_id, members in grouped.items()
        if convoy_id is not None
    ]
    if grouped.get(None):
        groups.append(ConvoyGroup(convoy_id=None, beads=tuple(grouped[None])))
    return groups


def flatten_groups(groups: Iterable[ConvoyGroup]) -> List[Any]:
    """Concatenate group members back into one sequence, in group order."""
    return [bead for group in groups for bead in group.beads]


@dataclass(frozen=True)
class GroupStats:
    """Counts for one convoy group of communications."""
    total: int
    pending: int
    stale: int

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "pending": self.pending, "stale": self.stale}


def group_stats(
    group: ConvoyGroup,
    now: Optional[datetime] = None,
    threshold: Union[timedelta, int, float] = STALE_COMMUNICATION_THRESHOLD,
) -> GroupStats:
    """Count pending and stale beads in a group of Bead objects."""
    now = as_utc(now) if now is not None else utc_now()
    pending = stale = 0
    for bead in group.beads:
        if bead.status.lower() in PENDING_STATUSES:
            pending += 1
        if is_stale(bead.updated_at, threshold, now):
            stale += 1
    return GroupStats(total=len(group.beads), pending=pending, stale=stale)
