from __future__ import annotations

from datetime import date

from fleetdb.apps.cafs import cascade, generator
from fleetdb.apps.cafs import models as caf_models
from fleetdb.apps.cafs import schemas as caf_schemas
from fleetdb.apps.cafs import services as caf_services
from fleetdb.apps.cafs import signatures as caf_signatures
from fleetdb.apps.cafs.enums import CafCategory, CafPriority, CafStatus, SignatureType
from fleetdb.apps.incidents import models as incident_models
from fleetdb.apps.incidents import schemas as incident_schemas
from fleetdb.apps.incidents import services as incident_services
from fleetdb.apps.parties import schemas as party_schemas
from fleetdb.apps.parties import services as party_services
from fleetdb.apps.violations.enums import ResponsibilityType, ViolationSeverity
from fleetdb.authorization import resolve_caller

TODAY = date(2025, 3, 1)


def _create_carrier(db_session, *, with_approver: bool = True):
    master_person = party_services.ensure_person(
        db_session, user_id="master-1", first_name="Mara", last_name="Master"
    )
    master = party_services.ensure_master_organization(db_session, person=master_person)
    carrier = party_services.create_organization(
        db_session,
        payload=party_schemas.OrganizationCreate(name="Acme Freight"),
        master_organization_id=master.id,
    )
    approver = None
    if with_approver:
        approver = party_services.create_staff(
            db_session,
            organization=carrier,
            payload=party_schemas.StaffCreate(
                user_id="approver-1",
                first_name="Ann",
                last_name="Approver",
                position="Safety Manager",
                can_sign_cafs=True,
                can_approve_cafs=True,
            ),
        )
    db_session.commit()
    return carrier, approver


def _create_inspection(db_session, carrier):
    incident = incident_services.create_incident(
        db_session,
        payload=incident_schemas.RoadsideInspectionCreate(
            incident_type="ROADSIDE_INSPECTION",
            organization_id=carrier.id,
            incident_date=TODAY,
            inspection_level=1,
            violations=[
                incident_schemas.ViolationCreate(
                    violation_code="393.75(a)",
                    description="Flat tire or fabric exposed",
                    severity=ViolationSeverity.OUT_OF_SERVICE,
                    out_of_service=True,
                ),
                incident_schemas.ViolationCreate(
                    violation_code="390.11",
                    description="Failure to require observance of regulations",
                ),
            ],
        ),
        actor_user_id="approver-1",
    )
    db_session.commit()
    return incident


def _work_and_approve(db_session, caf, caller, staff):
    for target in (CafStatus.IN_PROGRESS, CafStatus.COMPLETED):
        caf_services.update_caf(
            db_session, caf=caf, payload=caf_schemas.CafUpdate(status=target), caller=caller
        )
    db_session.commit()
    for signature_type in (SignatureType.COMPLETION, SignatureType.APPROVAL):
        caf_signatures.submit_signature(
            db_session,
            caf_id=caf.id,
            payload=caf_schemas.SignatureCreate(
                signature_type=signature_type,
                staff_id=staff.id,
                digital_signature="Ann Approver",
            ),
            caller=caller,
            ip_address="203.0.113.7",
        )
        db_session.commit()


def test_group_priority():
    oos = generator.ViolationLine(code="393.9", out_of_service=True)
    brakes = generator.ViolationLine(code="393.47(e)")
    plain = generator.ViolationLine(code="390.11")

    assert generator.calculate_group_priority([plain, oos]) == CafPriority.CRITICAL
    assert generator.calculate_group_priority([plain, brakes]) == CafPriority.HIGH
    assert generator.calculate_group_priority([plain, plain, plain]) == CafPriority.MEDIUM
    assert generator.calculate_group_priority([plain]) == CafPriority.LOW


def test_group_violations_and_wording():
    groups = generator.group_violations(
        [
            generator.ViolationLine(code="390.11", description="Observance"),
            generator.ViolationLine(code="391.11", description="Unqualified driver"),
            generator.ViolationLine(code="395.8"),
        ]
    )

    assert list(groups) == [ResponsibilityType.DRIVER, ResponsibilityType.COMPANY]
    company = [line.code for line in groups[ResponsibilityType.COMPANY]]
    assert company == ["390.11", "395.8"]
    assert generator.group_title(ResponsibilityType.COMPANY, company) == "Company Operations - 390.11, 395.8"
    assert generator.group_summary(ResponsibilityType.COMPANY, company) == "Company violations: 390.11, 395.8"
    assert generator.group_description(groups[ResponsibilityType.COMPANY]).endswith(
        "390.11: Observance\n\n395.8"
    )


def test_corrective_action_template_mentions_driver_code():
    text = generator.corrective_action_template(ResponsibilityType.DRIVER, "392.2A")

    assert "2. Provide additional training on 392.2A" in text


def test_generate_one_caf_per_violation(db_session):
    carrier, approver = _create_carrier(db_session)
    incident = _create_inspection(db_session, carrier)

    cafs = generator.generate_cafs_for_incident(
        db_session, incident=incident, actor_user_id="approver-1", today=TODAY, year=2025
    )

    assert [caf.caf_number for caf in cafs] == ["CAF-2025-0001", "CAF-2025-0002"]

    tire, company = cafs
    assert tire.responsibility_type == ResponsibilityType.EQUIPMENT
    assert tire.category == CafCategory.EQUIPMENT_MAINTENANCE
    assert tire.priority == CafPriority.CRITICAL
    assert tire.due_date == date(2025, 3, 2)
    assert tire.violation_codes == ["393.75(a)"]
    assert tire.title == "EQUIPMENT Issue - 393.75(a)"

    assert company.responsibility_type == ResponsibilityType.COMPANY
    assert company.category == CafCategory.COMPANY_OPERATIONS
    assert company.priority == CafPriority.MEDIUM
    assert company.due_date == date(2025, 3, 8)

    for caf in cafs:
        assert caf.status == CafStatus.ASSIGNED
        assert caf.assigned_staff_id == approver.id
        assert caf.incident_id == incident.id


def test_generation_skips_violations_that_already_have_cafs(db_session):
    carrier, _ = _create_carrier(db_session)
    incident = _create_inspection(db_session, carrier)
    generator.generate_cafs_for_incident(db_session, incident=incident, today=TODAY, year=2025)

    again = generator.generate_cafs_for_incident(db_session, incident=incident, today=TODAY, year=2025)

    assert again == []
    assert db_session.query(caf_models.CorrectiveActionForm).count() == 2


def test_generation_without_approver_leaves_cafs_unassigned(db_session):
    carrier, _ = _create_carrier(db_session, with_approver=False)
    incident = _create_inspection(db_session, carrier)

    cafs = generator.generate_cafs_for_incident(db_session, incident=incident, today=TODAY, year=2025)

    assert len(cafs) == 2
    assert all(caf.assigned_staff_id is None for caf in cafs)


def test_approving_every_caf_resolves_the_incident(db_session):
    carrier, approver = _create_carrier(db_session)
    incident = _create_inspection(db_session, carrier)
    tire, company = generator.generate_cafs_for_incident(
        db_session, incident=incident, actor_user_id="approver-1", today=TODAY, year=2025
    )
    caller = resolve_caller(db_session, "approver-1")

    _work_and_approve(db_session, tire, caller, approver)

    assert tire.status == CafStatus.APPROVED
    assert tire.approved_by_staff_id == approver.id
    assert tire.approved_at is not None
    assert incident.status == incident_models.IncidentStatus.PENDING
    assert incident.completed_at is None

    _work_and_approve(db_session, company, caller, approver)

    assert incident.status == incident_models.IncidentStatus.RESOLVED
    assert incident.completed_at is not None
    summary = cascade.completion_summary(db_session, incident)
    assert summary.is_fully_remediated is True
    assert summary.completed_cafs == summary.total_cafs == 2
