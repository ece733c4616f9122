from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ...authorization import Action, CallerContext, authorize, ensure_allowed
from ..audit import services as audit_services
from ..incidents import models as incident_models
from ..parties import models as party_models
from ..parties import services as party_services
from ..violations import models as violation_models
from ..workflow import apply_transition
from . import cascade, generator, models, numbering, schemas
from .enums import PRIORITY_DUE_DAYS, CafStatus

logger = logging.getLogger(__name__)

CAF_ENTITY = "corrective_action_form"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# LOOKUPS
# ---------------------------------------------------------------------------


def get_caf(db: Session, caf_id: str) -> Optional[models.CorrectiveActionForm]:
    return (
        db.query(models.CorrectiveActionForm)
        .filter(models.CorrectiveActionForm.id == caf_id)
        .first()
    )


def get_caf_or_404(db: Session, caf_id: str) -> models.CorrectiveActionForm:
    caf = get_caf(db, caf_id)
    if caf is None:
        raise HTTPException(status_code=404, detail="CAF not found")
    return caf


def list_cafs(
    db: Session,
    *,
    caller: CallerContext,
    organization_id: Optional[str] = None,
    incident_id: Optional[str] = None,
    status_filter: Optional[CafStatus] = None,
) -> List[models.CorrectiveActionForm]:
    qs = db.query(models.CorrectiveActionForm).filter(models.CorrectiveActionForm.is_active.is_(True))
    if not caller.is_master:
        if not caller.organization_ids:
            return []
        qs = qs.filter(models.CorrectiveActionForm.organization_id.in_(sorted(caller.organization_ids)))
    if organization_id:
        qs = qs.filter(models.CorrectiveActionForm.organization_id == organization_id)
    if incident_id:
        qs = qs.filter(models.CorrectiveActionForm.incident_id == incident_id)
    if status_filter:
        qs = qs.filter(models.CorrectiveActionForm.status == status_filter)
    return qs.order_by(models.CorrectiveActionForm.created_at.desc()).all()


# ---------------------------------------------------------------------------
# CREATE
# ---------------------------------------------------------------------------


def _violation_lines(
    db: Session,
    *,
    incident: Optional[incident_models.Incident],
    codes: List[str],
) -> List[generator.ViolationLine]:
    """Describe each code from the incident when cited there, else the catalog."""
    cited = {}
    if incident is not None:
        for violation in incident.violations:
            cited.setdefault(violation.violation_code, violation)

    lines = []
    for code in codes:
        violation = cited.get(code)
        if violation is not None:
            lines.append(
                generator.ViolationLine(
                    code=code,
                    description=violation.description,
                    out_of_service=violation.is_out_of_service,
                )
            )
            continue
        entry = (
            db.query(violation_models.ViolationCode)
            .filter(violation_models.ViolationCode.code == code)
            .first()
        )
        lines.append(generator.ViolationLine(code=code, description=entry.description if entry else ""))
    return lines


def _resolve_assignee(
    db: Session,
    *,
    caller: CallerContext,
    organization_id: str,
    assigned_staff_id: Optional[str],
) -> Optional[str]:
    if assigned_staff_id:
        staff = party_services.get_staff(db, assigned_staff_id)
        if staff is None:
            raise HTTPException(status_code=404, detail="Assigned staff member not found")
        if staff.organization_id != organization_id or not staff.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Assigned staff member must be active staff of the CAF's organization",
            )
        return staff.id

    if caller.is_master:
        approver = party_services.first_approver(db, organization_id=organization_id)
        return approver.id if approver is not None else None

    own = caller.staff_for(organization_id)
    return own.id if own is not None else None


def create_caf(
    db: Session,
    *,
    payload: schemas.CafCreate,
    caller: CallerContext,
    today: Optional[date] = None,
    year: Optional[int] = None,
) -> models.CorrectiveActionForm:
    ensure_allowed(
        authorize(caller, {"kind": "caf", "organization_id": payload.organization_id}, Action.CREATE)
    )
    organization = party_services.get_organization_or_404(db, payload.organization_id)

    incident = None
    if payload.incident_id:
        incident = (
            db.query(incident_models.Incident)
            .filter(incident_models.Incident.id == payload.incident_id)
            .first()
        )
        if incident is None:
            raise HTTPException(status_code=404, detail="Incident not found")
        if incident.organization_id != organization.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Incident belongs to a different organization",
            )

    codes = [code.strip() for code in payload.violation_codes if code and code.strip()]
    if not codes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="violation_codes must not be empty")

    lines = _violation_lines(db, incident=incident, codes=codes)
    responsibility = payload.responsibility_type
    priority = payload.priority or generator.calculate_group_priority(lines)
    today = today or date.today()
    due_date = payload.due_date or today + timedelta(days=PRIORITY_DUE_DAYS[priority])
    assigned_staff_id = _resolve_assignee(
        db,
        caller=caller,
        organization_id=organization.id,
        assigned_staff_id=payload.assigned_staff_id,
    )
    creator = caller.staff_for(organization.id)

    def _build(caf_number: str) -> models.CorrectiveActionForm:
        return models.CorrectiveActionForm(
            caf_number=caf_number,
            organization_id=organization.id,
            incident_id=incident.id if incident is not None else None,
            responsibility_type=responsibility,
            violation_codes=codes,
            violation_summary=generator.group_summary(responsibility, codes),
            title=payload.title or generator.group_title(responsibility, codes),
            description=payload.description or generator.group_description(lines),
            corrective_actions=payload.corrective_actions
            or generator.corrective_action_template(responsibility, codes[0]),
            category=generator.GROUP_CATEGORIES[responsibility],
            priority=priority,
            status=CafStatus.ASSIGNED,
            assigned_staff_id=assigned_staff_id,
            created_by_staff_id=creator.id if creator is not None else None,
            created_by_user_id=caller.user_id,
            due_date=due_date,
            requires_approval=payload.requires_approval,
            is_active=True,
        )

    caf = numbering.insert_caf(db, _build, year=year)

    audit_services.log_event(
        db,
        organization_id=caf.organization_id,
        actor_user_id=caller.user_id,
        entity_type=CAF_ENTITY,
        entity_id=caf.id,
        action="create",
        after={
            "caf_number": caf.caf_number,
            "priority": caf.priority,
            "assigned_staff_id": caf.assigned_staff_id,
            "violation_codes": codes,
        },
    )
    logger.info("CAF created", extra={"caf_id": caf.id, "caf_number": caf.caf_number})
    return caf


# ---------------------------------------------------------------------------
# STATUS TRANSITIONS / UPDATE
# ---------------------------------------------------------------------------


def transition_caf(
    db: Session,
    *,
    caf: models.CorrectiveActionForm,
    to_status: CafStatus,
    actor_user_id: Optional[str],
    approver: Optional[party_models.Staff] = None,
    approved_by_master: bool = False,
    correlation_id: Optional[str] = None,
) -> models.CorrectiveActionForm:
    """
    Move a CAF along its workflow. Raises TransitionError (and leaves the CAF
    untouched) when the move is not in the transition table.
    """
    to_status = CafStatus(to_status)
    from_status = caf.status
    now = _utcnow()

    after = {"organization_id": caf.organization_id}
    if to_status == CafStatus.APPROVED:
        after.update(
            {
                "approved_at": now,
                "approved_by_staff_id": approver.id if approver is not None else None,
                "approved_by_master": approved_by_master,
            }
        )

    apply_transition(
        db,
        actor_user_id=actor_user_id,
        entity_type=CAF_ENTITY,
        entity_id=caf.id,
        from_state=from_status,
        to_state=to_status,
        before_obj={"organization_id": caf.organization_id, "caf_number": caf.caf_number},
        after_obj=after,
        correlation_id=correlation_id,
    )

    caf.status = to_status
    if to_status == CafStatus.APPROVED:
        caf.approved_at = now
        caf.approved_by_staff_id = approver.id if approver is not None else None
    db.flush()
    return caf


def update_caf(
    db: Session,
    *,
    caf: models.CorrectiveActionForm,
    payload: schemas.CafUpdate,
    caller: CallerContext,
) -> models.CorrectiveActionForm:
    target = payload.status
    action = Action.TRANSITION if target is not None else Action.UPDATE
    ensure_allowed(
        authorize(caller, caf, action, target_status=target.value if target is not None else None)
    )

    if target is not None:
        transition_caf(
            db,
            caf=caf,
            to_status=target,
            actor_user_id=caller.user_id,
            approver=caller.staff_for(caf.organization_id),
            approved_by_master=caller.is_master,
        )

    if payload.completion_notes is not None:
        caf.completion_notes = payload.completion_notes
        audit_services.log_event(
            db,
            organization_id=caf.organization_id,
            actor_user_id=caller.user_id,
            entity_type=CAF_ENTITY,
            entity_id=caf.id,
            action="update",
            after={"completion_notes": payload.completion_notes},
        )
    db.flush()

    if target == CafStatus.APPROVED:
        cascade.run_completion_cascade(db, caf.incident_id, actor_user_id=caller.user_id)
    return caf


# ---------------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------------


def _ensure_mutable(caf: models.CorrectiveActionForm, what: str) -> None:
    if caf.status == CafStatus.APPROVED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot {what} an approved CAF",
        )


def delete_caf(db: Session, *, caf: models.CorrectiveActionForm, caller: CallerContext) -> None:
    ensure_allowed(authorize(caller, caf, Action.DELETE))
    _ensure_mutable(caf, "delete")

    audit_services.log_event(
        db,
        organization_id=caf.organization_id,
        actor_user_id=caller.user_id,
        entity_type=CAF_ENTITY,
        entity_id=caf.id,
        action="delete",
        before=audit_services.snapshot(caf, ["caf_number", "status", "incident_id"]),
    )
    incident_id = caf.incident_id
    db.delete(caf)
    db.flush()
    cascade.run_completion_cascade(db, incident_id, actor_user_id=caller.user_id)


# ---------------------------------------------------------------------------
# ATTACHMENTS
# ---------------------------------------------------------------------------


def list_attachments(db: Session, *, caf: models.CorrectiveActionForm) -> List[models.CafAttachment]:
    return (
        db.query(models.CafAttachment)
        .filter(models.CafAttachment.caf_id == caf.id)
        .order_by(models.CafAttachment.created_at.asc())
        .all()
    )


def add_attachment(
    db: Session,
    *,
    caf: models.CorrectiveActionForm,
    payload: schemas.CafAttachmentCreate,
    caller: CallerContext,
) -> models.CafAttachment:
    ensure_allowed(authorize(caller, caf, Action.ATTACH))
    _ensure_mutable(caf, "add attachments to")

    attachment = models.CafAttachment(
        caf_id=caf.id,
        file_name=payload.file_name,
        content_type=payload.content_type,
        size_bytes=payload.size_bytes,
        storage_key=payload.storage_key,
        description=payload.description,
        uploaded_by_user_id=caller.user_id,
    )
    db.add(attachment)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=caf.organization_id,
        actor_user_id=caller.user_id,
        entity_type=CAF_ENTITY,
        entity_id=caf.id,
        action="attach",
        after={"attachment_id": attachment.id, "file_name": attachment.file_name},
    )
    return attachment


def remove_attachment(
    db: Session,
    *,
    caf: models.CorrectiveActionForm,
    attachment_id: str,
    caller: CallerContext,
) -> None:
    ensure_allowed(authorize(caller, caf, Action.ATTACH))
    attachment = (
        db.query(models.CafAttachment)
        .filter(models.CafAttachment.id == attachment_id, models.CafAttachment.caf_id == caf.id)
        .first()
    )
    if attachment is None:
        raise HTTPException(status_code=404, detail="Attachment not found")
    _ensure_mutable(caf, "remove attachments from")

    audit_services.log_event(
        db,
        organization_id=caf.organization_id,
        actor_user_id=caller.user_id,
        entity_type=CAF_ENTITY,
        entity_id=caf.id,
        action="detach",
        before={"attachment_id": attachment.id, "file_name": attachment.file_name},
    )
    db.delete(attachment)
    db.flush()


# ---------------------------------------------------------------------------
# PERMISSIONS SUMMARY
# ---------------------------------------------------------------------------


def caf_permissions(db: Session, *, caller: CallerContext) -> schemas.CafPermissions:
    name = caller.display_name or None

    if caller.is_master:
        organization = None
        if caller.master_organization_ids:
            master_org = party_services.get_organization(db, sorted(caller.master_organization_ids)[0])
            if master_org is not None:
                organization = schemas.OrganizationSummary(id=master_org.id, name=master_org.name)
        return schemas.CafPermissions(
            can_create_cafs=True,
            user_type="master",
            can_assign_cross_org=True,
            name=name,
            organization=organization,
        )

    approver = next((s for s in caller.staff if s.can_approve_cafs), None)
    if approver is not None:
        org = approver.organization
        return schemas.CafPermissions(
            can_create_cafs=True,
            user_type="organization",
            can_assign_cross_org=False,
            name=name,
            organization=schemas.OrganizationSummary(id=org.id, name=org.name) if org is not None else None,
        )

    return schemas.CafPermissions(
        can_create_cafs=False,
        user_type="none",
        can_assign_cross_org=False,
    )
