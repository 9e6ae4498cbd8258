"""
Unit tests for snapshot diffing.
"""
from reservations.audit import diff_snapshots


def _snapshot(**overrides):
    data = {
        "id": 1,
        "title": "Board meeting",
        "status": "pending",
        "rooms": [{"room_id": 1, "room_name": "A", "cost_type": "flat", "cost": 5000, "requested_facilities": []}],
        "agreed_cost": 5000,
        "user_id": 7,
        "updated_at": "2025-06-01T10:00:00",
        "created_at": "2025-06-01T10:00:00",
    }
    data.update(overrides)
    return data


class TestDiffSnapshots:
    """Tests for field-level change detection."""

    def test_identical_snapshots_have_no_changes(self):
        """Test diffing a snapshot against itself yields nothing."""
        snap = _snapshot()
        assert diff_snapshots(snap, dict(snap)) == ([], {})

    def test_title_and_status_change(self):
        """Test exactly the modified fields are reported with their old and new values."""
        before = _snapshot()
        after = _snapshot(title="Board meeting (moved)", status="approved")

        changed, details = diff_snapshots(before, after)

        assert changed == ["title", "status"]
        assert details["title"] == {"old_value": "Board meeting", "new_value": "Board meeting (moved)"}
        assert details["status"] == {"old_value": "pending", "new_value": "approved"}

    def test_timestamps_and_user_are_ignored(self):
        """Test bookkeeping fields never count as changes."""
        before = _snapshot()
        after = _snapshot(updated_at="2025-06-02T00:00:00", user_id=99)
        assert diff_snapshots(before, after) == ([], {})

    def test_nested_rooms_compared_by_value(self):
        """Test room lists compare by content, not identity or key order."""
        before = _snapshot()
        reordered = [{"cost": 5000, "requested_facilities": [], "cost_type": "flat", "room_name": "A", "room_id": 1}]
        assert diff_snapshots(before, _snapshot(rooms=reordered)) == ([], {})

        cheaper = [dict(reordered[0], cost=4000)]
        changed, details = diff_snapshots(before, _snapshot(rooms=cheaper))
        assert changed == ["rooms"]
        assert details["rooms"]["new_value"][0]["cost"] == 4000

    def test_field_missing_on_one_side(self):
        """Test a field present in only one snapshot counts as changed."""
        before = _snapshot()
        after = _snapshot(notes="Bring coffee")

        changed, details = diff_snapshots(before, after)
        assert changed == ["notes"]
        assert details["notes"] == {"old_value": None, "new_value": "Bring coffee"}

        changed, details = diff_snapshots(after, before)
        assert changed == ["notes"]
        assert details["notes"] == {"old_value": "Bring coffee", "new_value": None}

    def test_diff_is_symmetric_in_fields(self):
        """Test swapping the arguments reports the same fields with swapped values."""
        before = _snapshot()
        after = _snapshot(title="Other", agreed_cost=6000)

        forward_fields, forward = diff_snapshots(before, after)
        backward_fields, backward = diff_snapshots(after, before)

        assert set(forward_fields) == set(backward_fields)
        for field in forward_fields:
            assert forward[field]["old_value"] == backward[field]["new_value"]
            assert forward[field]["new_value"] == backward[field]["old_value"]

    def test_missing_snapshot(self):
        """Test diffing against no snapshot reports every tracked field."""
        changed, _ = diff_snapshots(None, _snapshot())
        assert changed == ["id", "title", "status", "rooms", "agreed_cost"]
