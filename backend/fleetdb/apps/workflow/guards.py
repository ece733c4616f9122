from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_caf_approve(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "approved_at"):
        missing.append({"field": "approved_at", "reason": "approval timestamp required"})
    if not _get_value(after_obj, "approved_by_staff_id") and not _get_value(after_obj, "approved_by_master"):
        missing.append({"field": "approved_by_staff_id", "reason": "approver required"})
    return missing


def guard_incident_resolve(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "completed_at"):
        return [{"field": "completed_at", "reason": "completion timestamp required"}]
    return []
