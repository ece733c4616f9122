from __future__ import annotations

from datetime import date

from fleetdb.apps.audit import services as audit_services
from fleetdb.apps.parties import models as party_models


def _create_organization(db_session, name: str) -> party_models.Organization:
    organization = party_models.Organization(name=name)
    db_session.add(organization)
    db_session.commit()
    return organization


def test_log_event_writes_record(db_session):
    organization = _create_organization(db_session, "Audit Freight")

    event = audit_services.log_event(
        db_session,
        organization_id=organization.id,
        actor_user_id="user-1",
        entity_type="corrective_action_form",
        entity_id="caf-1",
        action="create",
        after={"caf_number": "CAF-2025-0001", "due_date": date(2025, 3, 2)},
        metadata={"incident_id": "incident-1"},
    )

    db_session.commit()
    assert event is not None
    assert event.entity_type == "corrective_action_form"
    assert event.after == {"caf_number": "CAF-2025-0001", "due_date": "2025-03-02"}
    assert event.metadata_json == {"incident_id": "incident-1"}


def test_list_audit_events_scopes_by_organization(db_session):
    first = _create_organization(db_session, "First Freight")
    second = _create_organization(db_session, "Second Freight")
    for organization in (first, second):
        audit_services.log_event(
            db_session,
            organization_id=organization.id,
            actor_user_id=None,
            entity_type="incident",
            entity_id=f"incident-{organization.name}",
            action="create",
        )
    db_session.commit()

    assert len(audit_services.list_audit_events(db_session)) == 2
    scoped = audit_services.list_audit_events(db_session, organization_ids=[first.id])
    assert [e.organization_id for e in scoped] == [first.id]
    assert audit_services.list_audit_events(db_session, organization_ids=[]) == []
    assert audit_services.list_audit_events(db_session, action="transition") == []


def test_snapshot_picks_fields():
    organization = party_models.Organization(name="Snapshot Freight", dot_number="123")

    assert audit_services.snapshot(organization, ["name", "dot_number"]) == {
        "name": "Snapshot Freight",
        "dot_number": "123",
    }
