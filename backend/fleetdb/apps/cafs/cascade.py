"""
Incident completion cascade.

An incident is fully remediated when it has at least one active CAF and
every one of them is APPROVED, carries a COMPLETION signature, and carries
either an APPROVAL signature or an approval timestamp. The incident is then
RESOLVED; otherwise it is PENDING. Re-running with no CAF changes is a no-op.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..incidents import models as incident_models
from ..incidents import schemas as incident_schemas
from ..workflow import apply_transition
from . import models
from .enums import CafStatus, SignatureType

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def active_cafs_for_incident(db: Session, incident_id: str) -> List[models.CorrectiveActionForm]:
    return (
        db.query(models.CorrectiveActionForm)
        .filter(
            models.CorrectiveActionForm.incident_id == incident_id,
            models.CorrectiveActionForm.is_active.is_(True),
        )
        .order_by(models.CorrectiveActionForm.caf_number.asc())
        .all()
    )


def is_caf_complete(caf: models.CorrectiveActionForm) -> bool:
    if caf.status != CafStatus.APPROVED:
        return False
    if not caf.has_signature(SignatureType.COMPLETION):
        return False
    return caf.has_signature(SignatureType.APPROVAL) or caf.approved_at is not None


def is_incident_remediated(cafs: List[models.CorrectiveActionForm]) -> bool:
    return bool(cafs) and all(is_caf_complete(caf) for caf in cafs)


def update_incident_completion(
    db: Session,
    incident_id: str,
    *,
    actor_user_id: Optional[str] = None,
) -> Optional[incident_models.IncidentStatus]:
    incident = (
        db.query(incident_models.Incident)
        .filter(incident_models.Incident.id == incident_id)
        .first()
    )
    if incident is None:
        return None

    remediated = is_incident_remediated(active_cafs_for_incident(db, incident_id))
    target = incident_models.IncidentStatus.RESOLVED if remediated else incident_models.IncidentStatus.PENDING

    if incident.status == target:
        if target == incident_models.IncidentStatus.PENDING and incident.completed_at is not None:
            incident.completed_at = None
            db.flush()
        return target

    completed_at = (incident.completed_at or _utcnow()) if remediated else None
    apply_transition(
        db,
        actor_user_id=actor_user_id,
        entity_type="incident",
        entity_id=incident.id,
        from_state=incident.status,
        to_state=target,
        before_obj={"organization_id": incident.organization_id, "completed_at": incident.completed_at},
        after_obj={"organization_id": incident.organization_id, "completed_at": completed_at},
        critical=False,
    )
    incident.status = target
    incident.completed_at = completed_at
    db.flush()

    logger.info(
        "Incident completion updated",
        extra={"incident_id": incident.id, "incident_status": target.value},
    )
    return target


def run_completion_cascade(
    db: Session,
    incident_id: Optional[str],
    *,
    actor_user_id: Optional[str] = None,
) -> Optional[incident_models.IncidentStatus]:
    """
    Cascade after a CAF change. Failures are logged and swallowed so the
    triggering signature or update still succeeds.
    """
    if not incident_id:
        return None
    try:
        with db.begin_nested():
            return update_incident_completion(db, incident_id, actor_user_id=actor_user_id)
    except Exception:
        logger.warning(
            "Incident completion cascade failed",
            extra={"incident_id": incident_id},
            exc_info=True,
        )
        return None


def completion_summary(
    db: Session,
    incident: incident_models.Incident,
) -> incident_schemas.IncidentCompletionSummary:
    cafs = active_cafs_for_incident(db, incident.id)
    items = [
        incident_schemas.CafCompletionItem(
            caf_id=caf.id,
            caf_number=caf.caf_number,
            status=caf.status.value,
            has_completion_signature=caf.has_signature(SignatureType.COMPLETION),
            has_approval=caf.has_signature(SignatureType.APPROVAL) or caf.approved_at is not None,
            is_complete=is_caf_complete(caf),
        )
        for caf in cafs
    ]
    return incident_schemas.IncidentCompletionSummary(
        incident_id=incident.id,
        status=incident.status,
        completed_at=incident.completed_at,
        total_cafs=len(items),
        completed_cafs=sum(1 for item in items if item.is_complete),
        is_fully_remediated=is_incident_remediated(cafs),
        cafs=items,
    )
