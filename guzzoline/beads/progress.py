"""
Epic progress roll-up.

Counts an epic's children by status bucket and derives a completion
percentage. Unknown statuses are errors so totals never under-count.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from guzzoline.core.errors import GuzzolineError, InvalidInput, RecordFailure, UnknownStatus

from .grouping import group_by_convoy
from .models import Bead

logger = logging.getLogger(__name__)


class StatusBucket(Enum):
    """Progress buckets a child bead can fall into."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"


# Tracker statuses and synonyms, lower-case
STATUS_BUCKETS: Dict[str, StatusBucket] = {
    "open": StatusBucket.OPEN,
    "pending": StatusBucket.OPEN,
    "in_progress": StatusBucket.IN_PROGRESS,
    "hooked": StatusBucket.IN_PROGRESS,
    "active": StatusBucket.IN_PROGRESS,
    "blocked": StatusBucket.BLOCKED,
    "deferred": StatusBucket.DEFERRED,
    "closed": StatusBucket.CLOSED,
    "done": StatusBucket.CLOSED,
    "completed": StatusBucket.CLOSED,
    "tombstone": StatusBucket.CLOSED,
}


def bucket_for(status: Any, bead_id: Optional[str] = None) -> StatusBucket:
    """Map a tracker status onto its progress bucket.

    Raises:
        UnknownStatus: If the status is not a recognized value
    """
    if not isinstance(status, str):
        raise UnknownStatus(repr(status), bead_id)
    try:
        return STATUS_BUCKETS[status.strip().lower()]
    except KeyError:
        raise UnknownStatus(status, bead_id)


@dataclass(frozen=True)
class EpicProgress:
    """Summary of an epic's children by status bucket."""
    total: int = 0
    open: int = 0
    in_progress: int = 0
    blocked: int = 0
    deferred: int = 0
    closed: int = 0
    percent_complete: int = 0

    def __post_init__(self):
        """Validate the bucket counts add up to the total."""
        counts = (self.open, self.in_progress, self.blocked, self.deferred, self.closed)
        if any(count < 0 for count in counts):
            raise InvalidInput("Progress counts cannot be negative")
        if sum(counts) != self.total:
            raise InvalidInput(f"Progress buckets sum to {sum(counts)}, expected {self.total}")
        if not 0 <= self.percent_complete <= 100:
            raise InvalidInput(f"percent_complete out of range: {self.percent_complete}")

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "open": self.open,
            "inProgress": self.in_progress,
            "blocked": self.blocked,
            "deferred": self.deferred,
            "closed": self.closed,
            "percentComplete": self.percent_complete,
        }


EMPTY_PROGRESS = EpicProgress()


def _status_and_id(child: Any) -> Tuple[Any, Optional[str]]:
    if isinstance(child, Mapping):
        return child.get("status"), child.get("id")
    return getattr(child, "status", None), getattr(child, "id", None)


def _percent(closed: int, total: int) -> int:
    if total == 0:
        return 0
    ratio = Decimal(closed) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_epic_progress(children: Iterable[Any]) -> EpicProgress:
    """Roll up child beads into progress counts.

    Children may be Bead objects, raw mappings or anything with a
    ``status`` attribute. An empty input gives all zeros.

    Raises:
        UnknownStatus: If any child has an unrecognized status
    """
    counts = {bucket: 0 for bucket in StatusBucket}
    total = 0
    for child in children:
        status, child_id = _status_and_id(child)
        counts[bucket_for(status, child_id)] += 1
        total += 1

    closed = counts[StatusBucket.CLOSED]
    return EpicProgress(
        total=total,
        open=counts[StatusBucket.OPEN],
        in_progress=counts[StatusBucket.IN_PROGRESS],
        blocked=counts[StatusBucket.BLOCKED],
        deferred=counts[StatusBucket.DEFERRED],
        closed=closed,
        percent_complete=_percent(closed, total),
    )


@dataclass(frozen=True)
class EpicSummary:
    """Progress for a single epic."""
    epic_id: str
    progress: EpicProgress

    def to_dict(self) -> Dict[str, Any]:
        return {"epic_id": self.epic_id, "progress": self.progress.to_dict()}


@dataclass(frozen=True)
class EpicSummaryReport:
    """Progress for every epic found in a bead snapshot."""
    epics: Tuple[EpicSummary, ...]
    failures: Tuple[RecordFailure, ...] = ()

    def get(self, epic_id: str) -> Optional[EpicProgress]:
        for summary in self.epics:
            if summary.epic_id == epic_id:
                return summary.progress
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epics": [summary.to_dict() for summary in self.epics],
            "failures": [failure.to_dict() for failure in self.failures],
        }


def summarize_epics(beads: Iterable[Union[Bead, Mapping[str, Any]]]) -> EpicSummaryReport:
    """Compute progress for each parent referenced in a bead snapshot.

    Epics appear in first-seen order of their parent id. Children that
    cannot be parsed or have an unknown status are reported in
    ``failures`` and left out of their epic's counts.
    """
    failures: List[RecordFailure] = []
    children: List[Bead] = []

    for index, raw in enumerate(beads):
        try:
            bead = raw if isinstance(raw, Bead) else Bead.from_dict(raw)
            bucket_for(bead.status, bead.id)
        except GuzzolineError as e:
            bead_id = raw.id if isinstance(raw, Bead) else None
            if isinstance(raw, Mapping) and raw.get("id"):
                bead_id = str(raw["id"])
            logger.warning("Skipping epic child %s (%s): %s", index, bead_id, e)
            failures.append(RecordFailure.from_exception(index, bead_id, e))
            continue
        children.append(bead)

    summaries = [
        EpicSummary(epic_id=group.convoy_id, progress=calculate_epic_progress(group.beads))
        for group in group_by_convoy(children)
        if group.convoy_id is not None
    ]
    return EpicSummaryReport(epics=tuple(summaries), failures=tuple(failures))
