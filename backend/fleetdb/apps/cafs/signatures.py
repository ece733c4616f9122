"""
CAF signatures.

A COMPLETION signature records that the corrective action was carried out;
an APPROVAL signature closes the CAF. Checks run in a fixed order and each
failure has its own status code and message:

1. required fields (400)
2. CAF exists (404)
3. staff record exists (404)
4. caller may sign as that staff member (403)
5. type-specific capability (403) and CAF state (400)
6. no duplicate (CAF, staff, type) signature (400)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...authorization import Action, CallerContext, authorize, ensure_allowed
from ..audit import services as audit_services
from ..parties import services as party_services
from . import cascade, models, schemas
from .enums import CafStatus, SignatureType

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("signature_type", "staff_id", "digital_signature")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def client_ip(headers: Mapping[str, str]) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return "unknown"


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def submit_signature(
    db: Session,
    *,
    caf_id: str,
    payload: schemas.SignatureCreate,
    caller: CallerContext,
    ip_address: Optional[str] = None,
) -> Tuple[models.CafSignature, models.CorrectiveActionForm]:
    missing = [name for name in REQUIRED_FIELDS if not getattr(payload, name)]
    if missing:
        raise _bad_request(f"Missing required fields: {', '.join(missing)}")

    caf = (
        db.query(models.CorrectiveActionForm)
        .filter(models.CorrectiveActionForm.id == caf_id)
        .first()
    )
    if caf is None:
        raise HTTPException(status_code=404, detail="CAF not found")

    staff = party_services.get_staff(db, payload.staff_id)
    if staff is None:
        raise HTTPException(status_code=404, detail="Staff member not found")

    ensure_allowed(authorize(caller, staff, Action.SIGN))

    signature_type = SignatureType(payload.signature_type)
    if signature_type == SignatureType.COMPLETION:
        if not staff.can_sign_cafs:
            raise _forbidden("Staff member is not permitted to sign CAFs")
        if caf.status != CafStatus.COMPLETED:
            raise _bad_request("CAF must be in COMPLETED status before a completion signature")
    else:
        if not (staff.can_approve_cafs or caller.is_master):
            raise _forbidden("Staff member is not permitted to approve CAFs")
        if caf.status != CafStatus.COMPLETED:
            raise _bad_request("CAF must be in COMPLETED status before approval")
        if not caf.has_signature(SignatureType.COMPLETION):
            raise _bad_request("CAF must have a completion signature before approval")

    duplicate = (
        db.query(models.CafSignature)
        .filter(
            models.CafSignature.caf_id == caf.id,
            models.CafSignature.staff_id == staff.id,
            models.CafSignature.signature_type == signature_type,
        )
        .first()
    )
    if duplicate is not None:
        raise _bad_request(f"{signature_type.value} signature already recorded for this staff member")

    now = _utcnow()
    before_status = caf.status
    signature = models.CafSignature(
        caf_id=caf.id,
        staff_id=staff.id,
        signature_type=signature_type,
        digital_signature=payload.digital_signature,
        signed_at=now,
        ip_address=ip_address or "unknown",
        notes=payload.notes,
        signed_by_user_id=caller.user_id,
    )

    try:
        with db.begin_nested():
            caf.signatures.append(signature)
            if signature_type == SignatureType.COMPLETION:
                caf.completed_at = now
                if payload.notes:
                    caf.completion_notes = payload.notes
                if not caf.requires_approval:
                    caf.status = CafStatus.APPROVED
                    caf.approved_at = now
            else:
                caf.status = CafStatus.APPROVED
                caf.approved_at = now
                caf.approved_by_staff_id = staff.id
            db.flush()
    except IntegrityError:
        raise _bad_request(f"{signature_type.value} signature already recorded for this staff member")

    audit_services.log_event(
        db,
        organization_id=caf.organization_id,
        actor_user_id=caller.user_id,
        entity_type="corrective_action_form",
        entity_id=caf.id,
        action="sign",
        before={"status": before_status},
        after={"status": caf.status, "signature_type": signature_type, "staff_id": staff.id},
        metadata={"signature_id": signature.id, "ip_address": signature.ip_address},
        critical=False,
    )
    logger.info(
        "CAF signed",
        extra={"caf_id": caf.id, "signature_type": signature_type.value, "staff_id": staff.id},
    )

    if caf.incident_id:
        cascade.run_completion_cascade(db, caf.incident_id, actor_user_id=caller.user_id)

    return signature, caf


def signature_message(signature_type: SignatureType, caf: models.CorrectiveActionForm) -> str:
    if signature_type == SignatureType.COMPLETION:
        if caf.status == CafStatus.APPROVED:
            return "Completion signed; CAF approved automatically"
        return "Completion signed; awaiting approval"
    return "Approval signed; CAF approved"
