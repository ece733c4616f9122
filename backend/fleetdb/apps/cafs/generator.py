"""
CAF generation from incident violations.

One CAF per violation that has none yet. Responsibility, category and the
default priority / due window come from the violation classifier; an
out-of-service violation is always CRITICAL. Each CAF is committed on its
own, so a failure part-way leaves the earlier violations converted.

Also holds the grouped wording used when a CAF covers several violations of
the same responsibility type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..audit import services as audit_services
from ..incidents import models as incident_models
from ..parties import services as party_services
from ..violations import classifier
from ..violations.enums import ResponsibilityType
from . import models, numbering
from .enums import PRIORITY_DUE_DAYS, CafCategory, CafPriority, CafStatus

logger = logging.getLogger(__name__)

CORRECTIVE_ACTION_TEMPLATES = {
    ResponsibilityType.DRIVER: (
        "1. Review violation with driver\n"
        "2. Provide additional training on {code}\n"
        "3. Document corrective action taken\n"
        "4. Monitor driver compliance"
    ),
    ResponsibilityType.EQUIPMENT: (
        "1. Inspect equipment for compliance\n"
        "2. Repair or replace deficient components\n"
        "3. Verify compliance with regulations\n"
        "4. Update maintenance records"
    ),
    ResponsibilityType.COMPANY: (
        "1. Review company policies and procedures\n"
        "2. Update procedures as necessary\n"
        "3. Train staff on policy changes\n"
        "4. Monitor implementation"
    ),
}

GROUP_TITLES = {
    ResponsibilityType.DRIVER: "Driver Corrective Action",
    ResponsibilityType.EQUIPMENT: "Equipment Maintenance",
    ResponsibilityType.COMPANY: "Company Operations",
}

GROUP_CATEGORIES = {
    ResponsibilityType.DRIVER: CafCategory.DRIVER_PERFORMANCE,
    ResponsibilityType.EQUIPMENT: CafCategory.EQUIPMENT_MAINTENANCE,
    ResponsibilityType.COMPANY: CafCategory.COMPANY_OPERATIONS,
}

# Codes serious enough to make a violation group HIGH without an OOS order.
HIGH_PRIORITY_PREFIXES = ("392.2", "392.4", "393.47", "396.3", "391.11")


@dataclass(frozen=True)
class ViolationLine:
    """Minimal view of a violation used for grouped wording."""

    code: str
    description: str = ""
    out_of_service: bool = False
    responsibility: Optional[ResponsibilityType] = None


# ---------------------------------------------------------------------------
# WORDING AND PRIORITY
# ---------------------------------------------------------------------------


def corrective_action_template(responsibility: ResponsibilityType, code: str) -> str:
    template = CORRECTIVE_ACTION_TEMPLATES.get(
        responsibility, CORRECTIVE_ACTION_TEMPLATES[ResponsibilityType.COMPANY]
    )
    return template.format(code=code)


def violation_priority(rule: classifier.CafRule, *, out_of_service: bool) -> CafPriority:
    return CafPriority.CRITICAL if out_of_service else rule.priority


def due_days_for(rule: classifier.CafRule, priority: CafPriority) -> int:
    """The rule's window, never longer than the priority allows."""
    return min(rule.due_days, PRIORITY_DUE_DAYS[priority])


def calculate_group_priority(violations: Sequence[ViolationLine]) -> CafPriority:
    if any(v.out_of_service for v in violations):
        return CafPriority.CRITICAL
    if any(v.code.startswith(HIGH_PRIORITY_PREFIXES) for v in violations):
        return CafPriority.HIGH
    if len(violations) > 2:
        return CafPriority.MEDIUM
    return CafPriority.LOW


def group_violations(violations: Iterable[ViolationLine]) -> Dict[ResponsibilityType, List[ViolationLine]]:
    """Bucket violations by responsibility, in driver / equipment / company order."""
    groups: Dict[ResponsibilityType, List[ViolationLine]] = {
        ResponsibilityType.DRIVER: [],
        ResponsibilityType.EQUIPMENT: [],
        ResponsibilityType.COMPANY: [],
    }
    for line in violations:
        responsibility = line.responsibility or classifier.rule_for_code(line.code).responsibility
        groups[responsibility].append(line)
    return {key: items for key, items in groups.items() if items}


def group_title(responsibility: ResponsibilityType, codes: Sequence[str]) -> str:
    prefix = GROUP_TITLES.get(responsibility, "Corrective Action")
    return f"{prefix} - {', '.join(codes)}"


def group_description(violations: Sequence[ViolationLine]) -> str:
    lines = "\n\n".join(
        f"{v.code}: {v.description}" if v.description else v.code for v in violations
    )
    return f"Corrective action required for the following violations:\n\n{lines}"


def group_summary(responsibility: ResponsibilityType, codes: Sequence[str]) -> str:
    return f"{responsibility.value.title()} violations: {', '.join(codes)}"


# ---------------------------------------------------------------------------
# GENERATION
# ---------------------------------------------------------------------------


def pending_violations(db: Session, incident: incident_models.Incident) -> List[incident_models.Violation]:
    """Violations of the incident that no CAF references yet."""
    handled = {
        row[0]
        for row in db.query(models.CorrectiveActionForm.violation_id)
        .filter(
            models.CorrectiveActionForm.incident_id == incident.id,
            models.CorrectiveActionForm.violation_id.is_not(None),
        )
        .all()
    }
    return [v for v in incident.violations if v.id not in handled]


def _build_caf(
    *,
    caf_number: str,
    incident: incident_models.Incident,
    violation: incident_models.Violation,
    assigned_staff_id: Optional[str],
    created_by_staff_id: Optional[str],
    actor_user_id: Optional[str],
    today: date,
) -> models.CorrectiveActionForm:
    classification = classifier.classify(violation.violation_code)
    rule = classification.rule
    priority = violation_priority(rule, out_of_service=violation.is_out_of_service)
    responsibility = rule.responsibility

    return models.CorrectiveActionForm(
        caf_number=caf_number,
        organization_id=incident.organization_id,
        incident_id=incident.id,
        violation_id=violation.id,
        responsibility_type=responsibility,
        violation_codes=[violation.violation_code],
        violation_summary=group_summary(responsibility, [violation.violation_code]),
        title=f"{responsibility.value} Issue - {violation.violation_code}",
        description=f"Corrective action required for violation: {violation.description}",
        corrective_actions=corrective_action_template(responsibility, violation.violation_code),
        category=rule.category,
        priority=priority,
        status=CafStatus.ASSIGNED,
        assigned_staff_id=assigned_staff_id,
        created_by_staff_id=created_by_staff_id,
        created_by_user_id=actor_user_id,
        due_date=today + timedelta(days=due_days_for(rule, priority)),
        requires_approval=rule.requires_approval,
        is_active=True,
    )


def generate_cafs_for_incident(
    db: Session,
    *,
    incident: incident_models.Incident,
    actor_user_id: Optional[str] = None,
    created_by_staff_id: Optional[str] = None,
    today: Optional[date] = None,
    year: Optional[int] = None,
) -> List[models.CorrectiveActionForm]:
    today = today or date.today()
    approver = party_services.first_approver(db, organization_id=incident.organization_id)
    assigned_staff_id = approver.id if approver is not None else None
    if assigned_staff_id is None:
        logger.info(
            "No CAF approver on staff; generating unassigned CAFs",
            extra={"incident_id": incident.id, "organization_id": incident.organization_id},
        )

    generated: List[models.CorrectiveActionForm] = []
    for violation in pending_violations(db, incident):
        caf = numbering.insert_caf(
            db,
            lambda caf_number, violation=violation: _build_caf(
                caf_number=caf_number,
                incident=incident,
                violation=violation,
                assigned_staff_id=assigned_staff_id,
                created_by_staff_id=created_by_staff_id,
                actor_user_id=actor_user_id,
                today=today,
            ),
            year=year,
        )
        audit_services.log_event(
            db,
            organization_id=caf.organization_id,
            actor_user_id=actor_user_id,
            entity_type="corrective_action_form",
            entity_id=caf.id,
            action="generate",
            after={
                "caf_number": caf.caf_number,
                "violation_code": violation.violation_code,
                "priority": caf.priority,
                "due_date": caf.due_date,
            },
            metadata={"incident_id": incident.id},
        )
        db.commit()
        generated.append(caf)

    logger.info(
        "Generated CAFs for incident",
        extra={"incident_id": incident.id, "cafs_created": len(generated)},
    )
    return generated
