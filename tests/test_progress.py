"""
Unit tests for epic progress roll-up.
"""

from types import SimpleNamespace

import pytest

from guzzoline.beads.progress import (
    EMPTY_PROGRESS,
    EpicProgress,
    StatusBucket,
    bucket_for,
    calculate_epic_progress,
    summarize_epics,
)
from guzzoline.core.errors import InvalidInput, UnknownStatus


def _children(*statuses):
    return [{"id": f"gt-{i}", "status": status} for i, status in enumerate(statuses)]


def _bead(bead_id, status, parent):
    return {
        "id": bead_id,
        "issue_type": "task",
        "status": status,
        "parent": parent,
        "updated_at": "2026-10-17T12:00:00Z",
    }


class TestBucketFor:
    """Test status bucket mapping."""

    def test_tracker_statuses(self):
        """Verify each tracker status maps onto its own bucket."""
        for status in ("open", "in_progress", "blocked", "deferred", "closed"):
            assert bucket_for(status) == StatusBucket(status)

    def test_aliases(self):
        """Verify status synonyms map onto the right bucket."""
        assert bucket_for("pending") == StatusBucket.OPEN
        assert bucket_for("hooked") == StatusBucket.IN_PROGRESS
        assert bucket_for("active") == StatusBucket.IN_PROGRESS
        assert bucket_for("done") == StatusBucket.CLOSED
        assert bucket_for("completed") == StatusBucket.CLOSED
        assert bucket_for("tombstone") == StatusBucket.CLOSED

    def test_case_insensitive(self):
        """Verify status matching ignores case."""
        assert bucket_for("CLOSED") == StatusBucket.CLOSED

    def test_unknown_status(self):
        """Verify unknown statuses raise instead of being dropped."""
        with pytest.raises(UnknownStatus, match="wontfix") as exc_info:
            bucket_for("wontfix", bead_id="gt-7")
        assert exc_info.value.status == "wontfix"
        assert exc_info.value.bead_id == "gt-7"

    def test_missing_status(self):
        """Verify a missing status is unknown."""
        with pytest.raises(UnknownStatus):
            bucket_for(None)


class TestCalculateEpicProgress:
    """Test progress counts and completion percentage."""

    def test_empty_epic(self):
        """Verify an epic with no children is all zeros."""
        assert calculate_epic_progress([]) == EMPTY_PROGRESS
        assert EMPTY_PROGRESS.percent_complete == 0

    def test_three_of_five_closed(self):
        """Verify two open and three closed children is 60% complete."""
        progress = calculate_epic_progress(_children("open", "open", "closed", "closed", "closed"))
        assert progress == EpicProgress(total=5, open=2, closed=3, percent_complete=60)

    def test_hooked_counts_as_in_progress(self):
        """Verify hooked work is in progress, not open."""
        progress = calculate_epic_progress(_children("hooked", "in_progress", "open"))
        assert progress.in_progress == 2
        assert progress.open == 1

    def test_percent_rounds_half_up(self):
        """Verify completion percent rounds to the nearest whole number."""
        # 1/3 = 33.33%
        assert calculate_epic_progress(_children("closed", "open", "open")).percent_complete == 33
        # 2/3 = 66.67%
        assert calculate_epic_progress(_children("closed", "closed", "open")).percent_complete == 67
        # 1/8 = 12.5%
        assert calculate_epic_progress(_children("closed", *["open"] * 7)).percent_complete == 13

    def test_buckets_sum_to_total(self):
        """Verify every child lands in exactly one bucket."""
        progress = calculate_epic_progress(_children(
            "open", "pending", "active", "blocked", "deferred", "done", "tombstone",
        ))
        assert progress.total == 7
        assert (progress.open + progress.in_progress + progress.blocked
                + progress.deferred + progress.closed) == 7

    def test_all_closed_is_complete(self):
        """Verify a fully closed epic is 100%."""
        assert calculate_epic_progress(_children("closed", "done")).percent_complete == 100

    def test_accepts_status_objects(self):
        """Verify any object with a status attribute is accepted."""
        progress = calculate_epic_progress([SimpleNamespace(status="closed")])
        assert progress.closed == 1

    def test_unknown_status_fails_loudly(self):
        """Verify one unknown status fails the whole epic."""
        with pytest.raises(UnknownStatus):
            calculate_epic_progress(_children("open", "wontfix"))

    def test_inconsistent_counts_rejected(self):
        """Verify a progress record whose buckets disagree with total is invalid."""
        with pytest.raises(InvalidInput):
            EpicProgress(total=3, open=1)

    def test_to_dict_uses_camel_case(self):
        """Verify the dashboard field names."""
        data = calculate_epic_progress(_children("in_progress", "closed")).to_dict()
        assert data == {
            "total": 2,
            "open": 0,
            "inProgress": 1,
            "blocked": 0,
            "deferred": 0,
            "closed": 1,
            "percentComplete": 50,
        }


class TestSummarizeEpics:
    """Test progress for every epic in a snapshot."""

    def test_epics_in_first_seen_order(self):
        """Verify each parent gets its own progress."""
        report = summarize_epics([
            _bead("gt-1", "closed", "ep-2"),
            _bead("gt-2", "open", "ep-1"),
            _bead("gt-3", "open", "ep-2"),
            _bead("gt-4", "closed", None),
        ])

        assert [s.epic_id for s in report.epics] == ["ep-2", "ep-1"]
        assert report.get("ep-2").percent_complete == 50
        assert report.get("ep-1").open == 1
        assert report.get("missing") is None

    def test_bad_children_are_reported(self):
        """Verify an unknown status is skipped and reported, not fatal."""
        report = summarize_epics([
            _bead("gt-1", "closed", "ep-1"),
            _bead("gt-2", "wontfix", "ep-1"),
        ])

        assert report.get("ep-1").total == 1
        assert [(f.index, f.record_id, f.error) for f in report.failures] == [
            (1, "gt-2", "UnknownStatus"),
        ]

    def test_to_dict(self):
        """Verify the report flattens to plain data."""
        data = summarize_epics([_bead("gt-1", "closed", "ep-1")]).to_dict()
        assert data == {
            "epics": [{
                "epic_id": "ep-1",
                "progress": {
                    "total": 1, "open": 0, "inProgress": 0, "blocked": 0,
                    "deferred": 0, "closed": 1, "percentComplete": 100,
                },
            }],
            "failures": [],
        }
