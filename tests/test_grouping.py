"""
Unit tests for convoy grouping.
"""

from datetime import datetime, timedelta, timezone

from guzzoline.beads.grouping import (
    ConvoyGroup,
    flatten_groups,
    group_by_convoy,
    group_stats,
)
from guzzoline.beads.models import Bead

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _mail(bead_id, parent=None, status="open", days_old=0):
    return Bead(
        id=bead_id,
        type="mail",
        status=status,
        updated_at=NOW - timedelta(days=days_old),
        parent=parent,
    )


class TestGroupByConvoy:
    """Test partitioning beads by parent reference."""

    def test_groups_in_first_seen_order(self):
        """Verify groups follow first appearance and ungrouped comes last."""
        beads = [
            {"id": "a", "parent": "cv-1"},
            {"id": "b", "parent": None},
            {"id": "c", "parent": "cv-1"},
            {"id": "d", "parent": "cv-2"},
        ]
        groups = group_by_convoy(beads)

        assert [g.convoy_id for g in groups] == ["cv-1", "cv-2", None]
        assert [[b["id"] for b in g.beads] for g in groups] == [["a", "c"], ["d"], ["b"]]

    def test_empty_parent_is_ungrouped(self):
        """Verify an empty parent string lands in the ungrouped group."""
        groups = group_by_convoy([{"id": "a", "parent": ""}, {"id": "b"}])
        assert groups == [ConvoyGroup(convoy_id=None, beads=({"id": "a", "parent": ""}, {"id": "b"}))]

    def test_no_ungrouped_group_when_all_grouped(self):
        """Verify the ungrouped group is only emitted when non-empty."""
        groups = group_by_convoy([{"id": "a", "parent": "cv-1"}])
        assert [g.convoy_id for g in groups] == ["cv-1"]

    def test_empty_input(self):
        """Verify no beads give no groups."""
        assert group_by_convoy([]) == []

    def test_every_bead_in_exactly_one_group(self):
        """Verify the partition neither loses nor duplicates beads."""
        beads = [_mail(f"m{i}", parent=["cv-1", None, "cv-2"][i % 3]) for i in range(10)]
        flattened = flatten_groups(group_by_convoy(beads))
        assert sorted(b.id for b in flattened) == sorted(b.id for b in beads)
        assert len(flattened) == len(beads)

    def test_deterministic(self):
        """Verify the same input always gives the same output."""
        beads = [_mail("m1", "cv-2"), _mail("m2"), _mail("m3", "cv-1"), _mail("m4", "cv-2")]
        assert group_by_convoy(beads) == group_by_convoy(list(beads))

    def test_regrouping_flattened_output_is_idempotent(self):
        """Verify grouping the flattened groups gives the same groups."""
        beads = [_mail("m1", "cv-2"), _mail("m2"), _mail("m3", "cv-1"), _mail("m4", "cv-2")]
        groups = group_by_convoy(beads)
        assert group_by_convoy(flatten_groups(groups)) == groups

    def test_to_dict_serializes_beads(self):
        """Verify Bead members are flattened to plain data."""
        data = group_by_convoy([_mail("m1", "cv-1")])[0].to_dict()
        assert data["convoy_id"] == "cv-1"
        assert data["beads"][0]["id"] == "m1"


class TestGroupStats:
    """Test per-group pending and stale counts."""

    def test_counts(self):
        """Verify pending and stale beads are counted."""
        group = ConvoyGroup(convoy_id="cv-1", beads=(
            _mail("m1", "cv-1", status="open"),
            _mail("m2", "cv-1", status="hooked", days_old=8),
            _mail("m3", "cv-1", status="closed", days_old=30),
        ))
        stats = group_stats(group, now=NOW)

        assert stats.total == 3
        assert stats.pending == 2
        assert stats.stale == 2
        assert stats.to_dict() == {"total": 3, "pending": 2, "stale": 2}

    def test_custom_threshold(self):
        """Verify the staleness threshold can be overridden."""
        group = ConvoyGroup(convoy_id=None, beads=(_mail("m1", days_old=2),))
        assert group_stats(group, now=NOW, threshold=timedelta(days=1)).stale == 1
        assert group_stats(group, now=NOW).stale == 0
