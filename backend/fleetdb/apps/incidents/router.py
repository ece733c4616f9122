from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...authorization import Action, CallerContext, authorize, ensure_allowed, get_current_caller
from ...database import get_db
from ..cafs import cascade, generator
from . import models, schemas, services

router = APIRouter(prefix="/incidents", tags=["incidents"])


def _load_visible_incident(db: Session, incident_id: str, caller: CallerContext) -> models.Incident:
    incident = services.get_incident_or_404(db, incident_id)
    ensure_allowed(authorize(caller, incident, Action.VIEW))
    return incident


@router.post("", response_model=schemas.IncidentRead, status_code=status.HTTP_201_CREATED)
def create_incident(
    payload: schemas.IncidentCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    ensure_allowed(authorize(caller, {"organization_id": payload.organization_id}, Action.CREATE))
    incident = services.create_incident(db, payload=payload, actor_user_id=caller.user_id)
    db.commit()
    db.refresh(incident)
    return services.to_read_model(incident)


@router.get("", response_model=List[schemas.IncidentRead])
def list_incidents(
    organization_id: Optional[str] = None,
    incident_type: Optional[models.IncidentType] = None,
    status_filter: Optional[models.IncidentStatus] = None,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    incidents = services.list_incidents(
        db,
        caller=caller,
        organization_id=organization_id,
        incident_type=incident_type,
        status_filter=status_filter,
    )
    return [services.to_read_model(incident) for incident in incidents]


@router.get("/{incident_id}", response_model=schemas.IncidentRead)
def get_incident(
    incident_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return services.to_read_model(_load_visible_incident(db, incident_id, caller))


@router.post(
    "/{incident_id}/violations",
    response_model=List[schemas.ViolationRead],
    status_code=status.HTTP_201_CREATED,
)
def add_violations(
    incident_id: str,
    payload: schemas.ViolationsAdd,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    incident = _load_visible_incident(db, incident_id, caller)
    ensure_allowed(authorize(caller, incident, Action.UPDATE))
    created = services.add_violations(
        db,
        incident=incident,
        violations=payload.violations,
        actor_user_id=caller.user_id,
    )
    db.commit()
    for violation in created:
        db.refresh(violation)
    return created


@router.post("/{incident_id}/generate-cafs", response_model=schemas.GenerateCafsResult)
def generate_cafs(
    incident_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    incident = _load_visible_incident(db, incident_id, caller)
    ensure_allowed(
        authorize(caller, {"kind": "caf", "organization_id": incident.organization_id}, Action.GENERATE)
    )
    creator = caller.staff_for(incident.organization_id)
    cafs = generator.generate_cafs_for_incident(
        db,
        incident=incident,
        actor_user_id=caller.user_id,
        created_by_staff_id=creator.id if creator is not None else None,
    )
    kind = incident.incident_type.value.lower().replace("_", " ")
    return schemas.GenerateCafsResult(
        message=f"Generated {len(cafs)} CAFs for {kind}",
        cafs_created=len(cafs),
        caf_ids=[caf.id for caf in cafs],
        caf_numbers=[caf.caf_number for caf in cafs],
    )


@router.get("/{incident_id}/completion", response_model=schemas.IncidentCompletionSummary)
def get_completion(
    incident_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    incident = _load_visible_incident(db, incident_id, caller)
    return cascade.completion_summary(db, incident)
