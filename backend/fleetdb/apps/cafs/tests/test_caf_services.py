from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from fleetdb.apps.audit import models as audit_models
from fleetdb.apps.cafs import export as caf_export
from fleetdb.apps.cafs import models as caf_models
from fleetdb.apps.cafs import schemas as caf_schemas
from fleetdb.apps.cafs import services as caf_services
from fleetdb.apps.cafs import signatures as caf_signatures
from fleetdb.apps.cafs.enums import CafCategory, CafPriority, CafStatus, SignatureType
from fleetdb.apps.parties import schemas as party_schemas
from fleetdb.apps.parties import services as party_services
from fleetdb.apps.violations.enums import ResponsibilityType
from fleetdb.authorization import resolve_caller

TODAY = date(2025, 6, 2)


def _setup(db_session):
    master_person = party_services.ensure_person(
        db_session, user_id="master-1", first_name="Mara", last_name="Master"
    )
    master = party_services.ensure_master_organization(db_session, person=master_person, name="Mara Holdings")
    carrier = party_services.create_organization(
        db_session,
        payload=party_schemas.OrganizationCreate(name="Acme Freight"),
        master_organization_id=master.id,
    )
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
    party_services.create_staff(
        db_session,
        organization=carrier,
        payload=party_schemas.StaffCreate(
            user_id="signer-1", first_name="Sid", last_name="Signer", can_sign_cafs=True
        ),
    )
    db_session.commit()
    return carrier, approver


def _create(db_session, carrier, **overrides):
    payload = {
        "organization_id": carrier.id,
        "responsibility_type": ResponsibilityType.DRIVER,
        "violation_codes": ["391.11", " 392.2A "],
    }
    payload.update(overrides)
    caf = caf_services.create_caf(
        db_session,
        payload=caf_schemas.CafCreate(**payload),
        caller=resolve_caller(db_session, "approver-1"),
        today=TODAY,
        year=2025,
    )
    db_session.commit()
    return caf


def _approve(db_session, caf, approver):
    caller = resolve_caller(db_session, "approver-1")
    for target in (CafStatus.IN_PROGRESS, CafStatus.COMPLETED):
        caf_services.update_caf(
            db_session, caf=caf, payload=caf_schemas.CafUpdate(status=target), caller=caller
        )
    for signature_type in (SignatureType.COMPLETION, SignatureType.APPROVAL):
        caf_signatures.submit_signature(
            db_session,
            caf_id=caf.id,
            payload=caf_schemas.SignatureCreate(
                signature_type=signature_type,
                staff_id=approver.id,
                digital_signature="Ann Approver",
            ),
            caller=caller,
        )
    db_session.commit()


def test_create_caf_uses_grouped_defaults(db_session):
    carrier, approver = _setup(db_session)

    caf = _create(db_session, carrier)

    assert caf.caf_number == "CAF-2025-0001"
    assert caf.violation_codes == ["391.11", "392.2A"]
    assert caf.title == "Driver Corrective Action - 391.11, 392.2A"
    assert caf.violation_summary == "Driver violations: 391.11, 392.2A"
    assert caf.category == CafCategory.DRIVER_PERFORMANCE
    assert caf.priority == CafPriority.HIGH
    assert caf.due_date == date(2025, 6, 5)
    assert caf.status == CafStatus.ASSIGNED
    assert caf.assigned_staff_id == approver.id
    assert caf.created_by_staff_id == approver.id

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_id == caf.id, audit_models.AuditEvent.action == "create")
        .one()
    )
    assert event.after["caf_number"] == "CAF-2025-0001"


def test_create_caf_honours_explicit_values(db_session):
    carrier, _ = _setup(db_session)

    caf = _create(
        db_session,
        carrier,
        title="Log book review",
        priority=CafPriority.LOW,
        due_date=date(2025, 7, 1),
    )

    assert caf.title == "Log book review"
    assert caf.priority == CafPriority.LOW
    assert caf.due_date == date(2025, 7, 1)


def test_create_caf_requires_approver(db_session):
    carrier, _ = _setup(db_session)

    with pytest.raises(HTTPException) as excinfo:
        caf_services.create_caf(
            db_session,
            payload=caf_schemas.CafCreate(
                organization_id=carrier.id,
                responsibility_type=ResponsibilityType.COMPANY,
                violation_codes=["390.11"],
            ),
            caller=resolve_caller(db_session, "signer-1"),
        )

    assert excinfo.value.status_code == 403


def test_create_caf_rejects_blank_codes_and_foreign_assignee(db_session):
    carrier, _ = _setup(db_session)
    other = party_services.create_organization(
        db_session,
        payload=party_schemas.OrganizationCreate(name="Other Freight"),
        master_organization_id=None,
    )
    outsider = party_services.create_staff(
        db_session,
        organization=other,
        payload=party_schemas.StaffCreate(first_name="Out", last_name="Sider"),
    )
    db_session.commit()

    with pytest.raises(HTTPException) as excinfo:
        _create(db_session, carrier, violation_codes=["  "])
    assert excinfo.value.status_code == 400

    with pytest.raises(HTTPException) as excinfo:
        _create(db_session, carrier, assigned_staff_id=outsider.id)
    assert excinfo.value.status_code == 400


def test_update_completion_notes_only(db_session):
    carrier, _ = _setup(db_session)
    caf = _create(db_session, carrier)

    caf_services.update_caf(
        db_session,
        caf=caf,
        payload=caf_schemas.CafUpdate(completion_notes="Waiting on driver"),
        caller=resolve_caller(db_session, "approver-1"),
    )
    db_session.commit()

    assert caf.completion_notes == "Waiting on driver"
    assert caf.status == CafStatus.ASSIGNED


def test_unassigned_staff_cannot_update(db_session):
    carrier, _ = _setup(db_session)
    caf = _create(db_session, carrier)

    with pytest.raises(HTTPException) as excinfo:
        caf_services.update_caf(
            db_session,
            caf=caf,
            payload=caf_schemas.CafUpdate(status=CafStatus.IN_PROGRESS),
            caller=resolve_caller(db_session, "signer-1"),
        )

    assert excinfo.value.status_code == 403
    assert caf.status == CafStatus.ASSIGNED


def test_delete_and_attachments_blocked_once_approved(db_session):
    carrier, approver = _setup(db_session)
    caf = _create(db_session, carrier)
    caller = resolve_caller(db_session, "approver-1")
    attachment = caf_services.add_attachment(
        db_session,
        caf=caf,
        payload=caf_schemas.CafAttachmentCreate(file_name="receipt.pdf", storage_key="cafs/receipt.pdf"),
        caller=caller,
    )
    db_session.commit()
    assert [a.id for a in caf_services.list_attachments(db_session, caf=caf)] == [attachment.id]

    _approve(db_session, caf, approver)
    assert caf.status == CafStatus.APPROVED

    for action in (
        lambda: caf_services.delete_caf(db_session, caf=caf, caller=caller),
        lambda: caf_services.add_attachment(
            db_session,
            caf=caf,
            payload=caf_schemas.CafAttachmentCreate(file_name="late.pdf", storage_key="cafs/late.pdf"),
            caller=caller,
        ),
        lambda: caf_services.remove_attachment(
            db_session, caf=caf, attachment_id=attachment.id, caller=caller
        ),
    ):
        with pytest.raises(HTTPException) as excinfo:
            action()
        assert excinfo.value.status_code == 400

    assert db_session.query(caf_models.CorrectiveActionForm).count() == 1


def test_delete_unapproved_caf(db_session):
    carrier, _ = _setup(db_session)
    caf = _create(db_session, carrier)

    caf_services.delete_caf(db_session, caf=caf, caller=resolve_caller(db_session, "approver-1"))
    db_session.commit()

    assert db_session.query(caf_models.CorrectiveActionForm).count() == 0
    event = db_session.query(audit_models.AuditEvent).filter(audit_models.AuditEvent.action == "delete").one()
    assert event.before["caf_number"] == "CAF-2025-0001"
    assert event.before["status"] == "ASSIGNED"


def test_list_cafs_scoped_to_caller(db_session):
    carrier, _ = _setup(db_session)
    _create(db_session, carrier)

    assert len(caf_services.list_cafs(db_session, caller=resolve_caller(db_session, "signer-1"))) == 1
    assert len(caf_services.list_cafs(db_session, caller=resolve_caller(db_session, "master-1"))) == 1
    assert caf_services.list_cafs(db_session, caller=resolve_caller(db_session, "nobody")) == []
    assert (
        caf_services.list_cafs(
            db_session,
            caller=resolve_caller(db_session, "master-1"),
            status_filter=CafStatus.APPROVED,
        )
        == []
    )


def test_caf_permissions_by_caller_type(db_session):
    carrier, _ = _setup(db_session)

    master = caf_services.caf_permissions(db_session, caller=resolve_caller(db_session, "master-1"))
    assert master.user_type == "master"
    assert master.can_assign_cross_org is True
    assert master.organization.name == "Mara Holdings"

    approver = caf_services.caf_permissions(db_session, caller=resolve_caller(db_session, "approver-1"))
    assert approver.user_type == "organization"
    assert approver.can_create_cafs is True
    assert approver.organization.id == carrier.id
    assert approver.name == "Ann Approver"

    signer = caf_services.caf_permissions(db_session, caller=resolve_caller(db_session, "signer-1"))
    assert signer.user_type == "none"
    assert signer.can_create_cafs is False


def test_export_fillable_and_completed(db_session):
    carrier, approver = _setup(db_session)
    caf = _create(db_session, carrier)

    fillable = caf_export.build_export(caf, today=TODAY)
    assert fillable.file_name == "CAF_CAF-2025-0001_fillable_2025-06-02.pdf"
    assert fillable.incident_id == "N/A"
    assert fillable.assigned_to.name == "Ann Approver"
    assert fillable.assigned_to.position == "Safety Manager"
    assert fillable.signatures == []
    assert fillable.approved_by is None

    _approve(db_session, caf, approver)
    completed = caf_export.build_export(caf, export_format="completed", today=TODAY)
    assert completed.status == "APPROVED"
    assert completed.approved_by.name == "Ann Approver"
    assert completed.approved_at is not None
    assert [s.signature_type for s in completed.signatures] == [
        SignatureType.COMPLETION,
        SignatureType.APPROVAL,
    ]


def test_export_rejects_unknown_format(db_session):
    carrier, _ = _setup(db_session)
    caf = _create(db_session, carrier)

    with pytest.raises(HTTPException) as excinfo:
        caf_export.build_export(caf, export_format="docx")

    assert excinfo.value.status_code == 400
