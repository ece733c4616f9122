from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Union

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...authorization import CallerContext
from ..audit import services as audit_services
from ..parties import models as party_models
from ..violations import classifier
from . import models, schemas

logger = logging.getLogger(__name__)

_COMMON_FIELDS = (
    "organization_id",
    "driver_id",
    "equipment_id",
    "title",
    "description",
    "incident_date",
    "incident_time",
    "officer_name",
    "officer_badge",
    "agency_name",
    "report_number",
    "location_address",
    "location_city",
    "location_state",
    "location_zip",
)

_ACCIDENT_FIELDS = (
    "fatalities",
    "injuries",
    "tow_away",
    "hazmat_released",
    "citation_issued",
    "is_preventable",
    "weather_conditions",
    "road_conditions",
)

_INSPECTION_FIELDS = (
    "inspection_level",
    "inspection_facility",
    "cvsa_decal_issued",
    "out_of_service_placed",
)


def get_incident(db: Session, incident_id: str) -> Optional[models.Incident]:
    return db.query(models.Incident).filter(models.Incident.id == incident_id).first()


def get_incident_or_404(db: Session, incident_id: str) -> models.Incident:
    incident = get_incident(db, incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


def _validate_references(db: Session, payload: Union[schemas.AccidentCreate, schemas.RoadsideInspectionCreate]) -> None:
    organization = (
        db.query(party_models.Organization)
        .filter(party_models.Organization.id == payload.organization_id)
        .first()
    )
    if organization is None:
        raise HTTPException(status_code=404, detail="Organization not found")

    if payload.driver_id:
        driver = db.query(party_models.Person).filter(party_models.Person.id == payload.driver_id).first()
        if driver is None:
            raise HTTPException(status_code=404, detail="Driver not found")

    if payload.equipment_id:
        equipment = (
            db.query(party_models.Equipment)
            .filter(party_models.Equipment.id == payload.equipment_id)
            .first()
        )
        if equipment is None:
            raise HTTPException(status_code=404, detail="Equipment not found")
        if equipment.organization_id != payload.organization_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Equipment belongs to a different organization",
            )


def _build_violation(data: schemas.ViolationCreate, *, line_number: int) -> models.Violation:
    responsibility = data.responsibility_type or classifier.rule_for_code(data.violation_code).responsibility
    return models.Violation(
        violation_code=data.violation_code.strip(),
        section=data.section,
        description=data.description,
        severity=data.severity,
        responsibility_type=responsibility,
        out_of_service=data.out_of_service,
        out_of_service_date=data.out_of_service_date,
        citation_number=data.citation_number,
        inspector_comments=data.inspector_comments,
        unit_number=data.unit_number,
        line_number=line_number,
    )


def create_incident(
    db: Session,
    *,
    payload: Union[schemas.AccidentCreate, schemas.RoadsideInspectionCreate],
    actor_user_id: Optional[str],
) -> models.Incident:
    _validate_references(db, payload)

    values = {name: getattr(payload, name) for name in _COMMON_FIELDS}
    if isinstance(payload, schemas.AccidentCreate):
        values.update({name: getattr(payload, name) for name in _ACCIDENT_FIELDS})
        incident = models.Accident(**values)
    else:
        values.update({name: getattr(payload, name) for name in _INSPECTION_FIELDS})
        incident = models.RoadsideInspection(**values)

    incident.status = models.IncidentStatus.OPEN
    incident.created_by_user_id = actor_user_id
    for index, violation in enumerate(payload.violations, start=1):
        incident.violations.append(_build_violation(violation, line_number=index))

    db.add(incident)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=incident.organization_id,
        actor_user_id=actor_user_id,
        entity_type="incident",
        entity_id=incident.id,
        action="create",
        after={
            "incident_type": incident.incident_type,
            "violations": [v.violation_code for v in incident.violations],
        },
    )
    return incident


def add_violations(
    db: Session,
    *,
    incident: models.Incident,
    violations: Iterable[schemas.ViolationCreate],
    actor_user_id: Optional[str],
) -> List[models.Violation]:
    next_line = (
        db.query(func.coalesce(func.max(models.Violation.line_number), 0))
        .filter(models.Violation.incident_id == incident.id)
        .scalar()
    ) or 0

    created = []
    for offset, data in enumerate(violations, start=1):
        violation = _build_violation(data, line_number=next_line + offset)
        incident.violations.append(violation)
        created.append(violation)
    db.flush()

    audit_services.log_event(
        db,
        organization_id=incident.organization_id,
        actor_user_id=actor_user_id,
        entity_type="incident",
        entity_id=incident.id,
        action="add_violations",
        after={"violations": [v.violation_code for v in created]},
    )
    return created


def list_incidents(
    db: Session,
    *,
    caller: CallerContext,
    organization_id: Optional[str] = None,
    incident_type: Optional[models.IncidentType] = None,
    status_filter: Optional[models.IncidentStatus] = None,
) -> List[models.Incident]:
    qs = db.query(models.Incident)
    if not caller.is_master:
        if not caller.organization_ids:
            return []
        qs = qs.filter(models.Incident.organization_id.in_(sorted(caller.organization_ids)))
    if organization_id:
        qs = qs.filter(models.Incident.organization_id == organization_id)
    if incident_type:
        qs = qs.filter(models.Incident.incident_type == incident_type)
    if status_filter:
        qs = qs.filter(models.Incident.status == status_filter)
    return qs.order_by(models.Incident.created_at.desc()).all()


def to_read_model(incident: models.Incident) -> Union[schemas.AccidentRead, schemas.RoadsideInspectionRead]:
    if isinstance(incident, models.Accident):
        return schemas.AccidentRead.model_validate(incident)
    return schemas.RoadsideInspectionRead.model_validate(incident)
