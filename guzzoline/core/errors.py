"""
Domain errors raised by cost and progress computations.

All of them are local, synchronous faults. Batch operations catch
GuzzolineError per record and report it instead of aborting.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


class GuzzolineError(ValueError):
    """Base class for all contract violations in this package."""


class InvalidInput(GuzzolineError):
    """Raised for negative counts, malformed timestamps or malformed records."""


class UnknownStatus(GuzzolineError):
    """Raised when a bead status falls outside the recognized buckets."""

    def __init__(self, status: str, bead_id: Optional[str] = None):
        where = f" on bead {bead_id}" if bead_id else ""
        super().__init__(f"Unknown status: {status!r}{where}")
        self.status = status
        self.bead_id = bead_id


class UnknownKind(GuzzolineError):
    """Raised when a bead type is neither a work item nor a communication."""

    def __init__(self, kind: str, bead_id: Optional[str] = None):
        where = f" on bead {bead_id}" if bead_id else ""
        super().__init__(f"Unknown bead type: {kind!r}{where}")
        self.kind = kind
        self.bead_id = bead_id


@dataclass(frozen=True)
class RecordFailure:
    """A record a batch operation could not process."""
    index: int
    record_id: Optional[str]
    error: str
    message: str

    @classmethod
    def from_exception(cls, index: int, record_id: Optional[str],
                       exc: GuzzolineError) -> "RecordFailure":
        return cls(index=index, record_id=record_id,
                   error=type(exc).__name__, message=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "record_id": self.record_id,
            "error": self.error,
            "message": self.message,
        }
