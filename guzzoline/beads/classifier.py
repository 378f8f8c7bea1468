"""
Bead classification into work items and communications.

Work items are rig-level coding tasks; communications are town-level
coordination records (mail, handoffs, convoys).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from guzzoline.core.errors import GuzzolineError, InvalidInput, RecordFailure, UnknownKind
from guzzoline.core.timestamps import as_utc, parse_timestamp, utc_now

from .models import Bead

logger = logging.getLogger(__name__)

# Age after which a communication is collapsed by default
STALE_COMMUNICATION_THRESHOLD = timedelta(days=7)


class WorkItemKind(Enum):
    """Every bead type the tracker produces."""
    TASK = "task"
    BUG = "bug"
    FEATURE = "feature"
    EPIC = "epic"
    MAIL = "mail"
    HANDOFF = "handoff"
    MESSAGE = "message"
    CONVOY = "convoy"

    @property
    def is_work_item(self) -> bool:
        return self in WORK_ITEM_KINDS

    @property
    def is_communication(self) -> bool:
        return self in COMMUNICATION_KINDS


WORK_ITEM_KINDS = frozenset({
    WorkItemKind.TASK, WorkItemKind.BUG, WorkItemKind.FEATURE, WorkItemKind.EPIC,
})
COMMUNICATION_KINDS = frozenset({
    WorkItemKind.MAIL, WorkItemKind.HANDOFF, WorkItemKind.MESSAGE, WorkItemKind.CONVOY,
})


def classify(bead_type: str, bead_id: Optional[str] = None) -> WorkItemKind:
    """Classify a bead type, case-insensitively.

    Raises:
        UnknownKind: If the type is in neither kind set
    """
    if not isinstance(bead_type, str):
        raise UnknownKind(repr(bead_type), bead_id)
    try:
        return WorkItemKind(bead_type.strip().lower())
    except ValueError:
        raise UnknownKind(bead_type, bead_id)


def _threshold(value: Union[timedelta, int, float]) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"Staleness threshold must be a timedelta or milliseconds, got {value!r}")
    return timedelta(milliseconds=value)


def is_stale(
    updated_at: Union[datetime, str],
    threshold: Union[timedelta, int, float] = STALE_COMMUNICATION_THRESHOLD,
    now: Optional[datetime] = None,
) -> bool:
    """True iff more than ``threshold`` has passed since ``updated_at``.

    Args:
        updated_at: Last update time, as a datetime or ISO-8601 string
        threshold: Age limit, as a timedelta or in milliseconds
        now: Reference time, defaults to the current UTC time

    Raises:
        InvalidInput: If updated_at is malformed
    """
    updated = as_utc(parse_timestamp(updated_at, "updated_at"))
    reference = as_utc(now) if now is not None else utc_now()
    return reference - updated > _threshold(threshold)


@dataclass(frozen=True)
class BeadPartition:
    """Beads split by kind, with stale communications flagged."""
    work_items: Tuple[Bead, ...]
    communications: Tuple[Bead, ...]
    stale_ids: frozenset
    failures: Tuple[RecordFailure, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_items": [bead.to_dict() for bead in self.work_items],
            "communications": [bead.to_dict() for bead in self.communications],
            "stale_ids": sorted(self.stale_ids),
            "failures": [failure.to_dict() for failure in self.failures],
        }


def partition_beads(
    beads: Iterable[Union[Bead, Mapping[str, Any]]],
    now: Optional[datetime] = None,
    stale_threshold: Union[timedelta, int, float] = STALE_COMMUNICATION_THRESHOLD,
) -> BeadPartition:
    """Split beads into work items and communications in input order.

    Beads that cannot be parsed or classified are reported as failures
    and the rest of the batch is still partitioned. Staleness is only
    evaluated for communications; nothing is dropped for being stale.
    """
    now = as_utc(now) if now is not None else utc_now()
    work_items: List[Bead] = []
    communications: List[Bead] = []
    stale_ids = set()
    failures: List[RecordFailure] = []

    for index, raw in enumerate(beads):
        bead_id = raw.id if isinstance(raw, Bead) else None
        try:
            bead = raw if isinstance(raw, Bead) else Bead.from_dict(raw)
            bead_id = bead.id
            kind = classify(bead.type, bead.id)
        except GuzzolineError as e:
            if bead_id is None and isinstance(raw, Mapping) and raw.get("id"):
                bead_id = str(raw["id"])
            logger.warning("Skipping bead %s (%s): %s", index, bead_id, e)
            failures.append(RecordFailure.from_exception(index, bead_id, e))
            continue

        if kind.is_work_item:
            work_items.append(bead)
        else:
            communications.append(bead)
            if is_stale(bead.updated_at, stale_threshold, now):
                stale_ids.add(bead.id)

    return BeadPartition(
        work_items=tuple(work_items),
        communications=tuple(communications),
        stale_ids=frozenset(stale_ids),
        failures=tuple(failures),
    )
