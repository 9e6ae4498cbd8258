"""
Field-level change detection between two appointment snapshots.

Snapshots are plain JSON-compatible dicts (see :func:`snapshot`). Two values
are equal when their canonical JSON forms are equal, so nested room bookings
are compared by value.
"""
import json
from typing import Any, Dict, List, Optional, Tuple

from . import schemas

# change incidentally on every write
EXCLUDED_FIELDS = frozenset({"updated_at", "created_at", "user_id"})

_MISSING = object()


def snapshot(appointment: schemas.Appointment) -> Dict[str, Any]:
    return appointment.model_dump(mode="json")


def canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))


def diff_snapshots(
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> Tuple[List[str], Dict[str, Dict[str, Any]]]:
    """
    Compare two snapshots field by field.

    Returns ``(changed_fields, details)`` where ``changed_fields`` keeps the
    order in which fields first appear (``before`` then ``after``) and
    ``details`` maps each changed field to ``{"old_value", "new_value"}``
    holding the original values. A field present in only one snapshot counts
    as changed.
    """
    before = before or {}
    after = after or {}

    fields = list(before)
    fields.extend(key for key in after if key not in before)

    changed_fields: List[str] = []
    details: Dict[str, Dict[str, Any]] = {}
    for field in fields:
        if field in EXCLUDED_FIELDS:
            continue
        old_value = before.get(field, _MISSING)
        new_value = after.get(field, _MISSING)
        if old_value is not _MISSING and new_value is not _MISSING:
            if canonical(old_value) == canonical(new_value):
                continue
        changed_fields.append(field)
        details[field] = {
            "old_value": None if old_value is _MISSING else old_value,
            "new_value": None if new_value is _MISSING else new_value,
        }
    return changed_fields, details
