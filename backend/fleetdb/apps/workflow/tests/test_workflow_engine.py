from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fleetdb.apps.audit import models as audit_models
from fleetdb.apps.parties import models as party_models
from fleetdb.apps.workflow import TransitionError, apply_transition, is_transition_allowed


def _create_organization(db_session) -> party_models.Organization:
    organization = party_models.Organization(name="Workflow Freight")
    db_session.add(organization)
    db_session.commit()
    return organization


def test_apply_transition_records_audit_event(db_session):
    organization = _create_organization(db_session)

    apply_transition(
        db_session,
        actor_user_id="user-1",
        entity_type="corrective_action_form",
        entity_id="caf-1",
        from_state="ASSIGNED",
        to_state="IN_PROGRESS",
        before_obj={"organization_id": organization.id},
        after_obj={"organization_id": organization.id},
    )

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(
            audit_models.AuditEvent.entity_type == "corrective_action_form",
            audit_models.AuditEvent.action == "transition",
        )
        .one()
    )
    assert event.organization_id == organization.id
    assert event.before == {"status": "ASSIGNED"}
    assert event.after == {"status": "IN_PROGRESS"}
    assert event.metadata_json == {"workflow": "corrective_action_form"}


@pytest.mark.parametrize(
    "from_state, to_state",
    [
        ("ASSIGNED", "COMPLETED"),
        ("ASSIGNED", "APPROVED"),
        ("IN_PROGRESS", "APPROVED"),
        ("APPROVED", "IN_PROGRESS"),
        ("CANCELLED", "ASSIGNED"),
        ("COMPLETED", "COMPLETED"),
    ],
)
def test_apply_transition_rejects_moves_outside_the_table(db_session, from_state, to_state):
    organization = _create_organization(db_session)

    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="corrective_action_form",
            entity_id="caf-2",
            from_state=from_state,
            to_state=to_state,
            before_obj={"organization_id": organization.id},
            after_obj={"organization_id": organization.id},
        )

    assert excinfo.value.code == "invalid_transition"
    assert str(excinfo.value) == f"Invalid status transition from {from_state} to {to_state}"
    assert db_session.query(audit_models.AuditEvent).count() == 0


def test_caf_approval_requires_timestamp_and_approver(db_session):
    organization = _create_organization(db_session)

    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="corrective_action_form",
            entity_id="caf-3",
            from_state="COMPLETED",
            to_state="APPROVED",
            before_obj={"organization_id": organization.id},
            after_obj={"organization_id": organization.id, "approved_at": None},
        )

    assert excinfo.value.code == "missing_requirements"
    assert {item["field"] for item in excinfo.value.detail} == {"approved_at", "approved_by_staff_id"}


def test_caf_approval_by_master_needs_no_staff_record(db_session):
    organization = _create_organization(db_session)

    apply_transition(
        db_session,
        actor_user_id="master-1",
        entity_type="corrective_action_form",
        entity_id="caf-4",
        from_state="COMPLETED",
        to_state="APPROVED",
        before_obj={"organization_id": organization.id},
        after_obj={
            "organization_id": organization.id,
            "approved_at": datetime.now(timezone.utc),
            "approved_by_master": True,
        },
    )

    assert db_session.query(audit_models.AuditEvent).count() == 1


def test_incident_resolution_requires_completion_timestamp(db_session):
    organization = _create_organization(db_session)

    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="incident",
            entity_id="incident-1",
            from_state="PENDING",
            to_state="RESOLVED",
            before_obj={"organization_id": organization.id},
            after_obj={"organization_id": organization.id, "completed_at": None},
        )

    assert excinfo.value.code == "missing_requirements"


def test_is_transition_allowed():
    assert is_transition_allowed("corrective_action_form", "REJECTED", "IN_PROGRESS")
    assert not is_transition_allowed("corrective_action_form", "APPROVED", "REJECTED")
    assert not is_transition_allowed("unknown", "A", "B")
