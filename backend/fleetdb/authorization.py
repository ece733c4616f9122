# backend/fleetdb/authorization.py

"""
Single capability check for fleetdb.

Routers resolve a CallerContext once per request and ask
`authorize(caller, resource, action)` instead of repeating role checks.

Rules:
- MASTER role holders may do anything.
- Everybody else needs an active role (or staff record) in the resource's
  organization. CAF-specific rules are layered on top:
  * create / delete / generate need a CAF approver in the organization;
  * update / transition are for the assigned staff member, or an approver
    when the target status is APPROVED;
  * sign is only allowed as one of the caller's own staff records.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Tuple

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from .apps.parties import models as party_models
from .database import get_db
from .security import Identity, get_current_identity

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    TRANSITION = "transition"
    SIGN = "sign"
    APPROVE = "approve"
    DELETE = "delete"
    GENERATE = "generate"
    ATTACH = "attach"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


def _allow(reason: str = "") -> AccessDecision:
    return AccessDecision(True, reason)


def _deny(reason: str) -> AccessDecision:
    return AccessDecision(False, reason)


@dataclass
class CallerContext:
    user_id: str
    person: Optional[party_models.Person] = None
    is_master: bool = False
    master_organization_ids: FrozenSet[str] = frozenset()
    organization_ids: FrozenSet[str] = frozenset()
    staff: Tuple[party_models.Staff, ...] = field(default_factory=tuple)

    @property
    def person_id(self) -> Optional[str]:
        return self.person.id if self.person is not None else None

    @property
    def display_name(self) -> str:
        return self.person.full_name if self.person is not None else ""

    def staff_for(self, organization_id: Optional[str]) -> Optional[party_models.Staff]:
        for record in self.staff:
            if record.organization_id == organization_id:
                return record
        return None

    def is_approver_for(self, organization_id: Optional[str]) -> bool:
        record = self.staff_for(organization_id)
        return bool(record is not None and record.can_approve_cafs)

    def is_member_of(self, organization_id: Optional[str]) -> bool:
        return organization_id is not None and organization_id in self.organization_ids


def resolve_caller(db: Session, user_id: str) -> CallerContext:
    person = (
        db.query(party_models.Person)
        .filter(party_models.Person.user_id == user_id)
        .first()
    )
    if person is None:
        return CallerContext(user_id=user_id)

    roles = (
        db.query(party_models.Role)
        .filter(
            party_models.Role.person_id == person.id,
            party_models.Role.is_active.is_(True),
        )
        .all()
    )
    staff = (
        db.query(party_models.Staff)
        .filter(
            party_models.Staff.person_id == person.id,
            party_models.Staff.is_active.is_(True),
        )
        .order_by(party_models.Staff.created_at.asc())
        .all()
    )

    is_master = False
    master_org_ids = set()
    org_ids = set()
    for role in roles:
        if role.role_type == party_models.RoleType.MASTER:
            is_master = True
            if role.organization_id:
                master_org_ids.add(role.organization_id)
        if role.organization_id:
            org_ids.add(role.organization_id)
        elif role.location is not None:
            org_ids.add(role.location.organization_id)
    for record in staff:
        org_ids.add(record.organization_id)

    return CallerContext(
        user_id=user_id,
        person=person,
        is_master=is_master,
        master_organization_ids=frozenset(master_org_ids),
        organization_ids=frozenset(org_ids),
        staff=tuple(staff),
    )


def _organization_of(resource: Any) -> Optional[str]:
    if isinstance(resource, party_models.Organization):
        return resource.id
    if isinstance(resource, dict):
        return resource.get("organization_id")
    return getattr(resource, "organization_id", None)


def _is_caf(resource: Any) -> bool:
    return getattr(resource, "__tablename__", None) == "corrective_action_forms"


def authorize(
    caller: CallerContext,
    resource: Any,
    action: Action,
    *,
    target_status: Optional[str] = None,
) -> AccessDecision:
    """
    Decide whether the caller may perform `action` on `resource`.

    `resource` is an ORM object (or a dict for not-yet-created records)
    carrying an `organization_id`. Staff records are the resource for SIGN.
    """
    action = Action(action)

    if caller.is_master:
        return _allow("master")

    if caller.person is None:
        return _deny("Caller has no party record")

    if isinstance(resource, party_models.Staff):
        if action == Action.SIGN:
            if resource.person_id == caller.person_id:
                return _allow("own staff record")
            return _deny("You can only sign as yourself")
        if action == Action.VIEW and caller.is_member_of(resource.organization_id):
            return _allow("organization member")
        return _deny("Access denied")

    organization_id = _organization_of(resource)
    if not caller.is_member_of(organization_id):
        return _deny("Access denied to this organization")

    if _is_caf(resource) or (isinstance(resource, dict) and resource.get("kind") == "caf"):
        return _authorize_caf(caller, resource, action, organization_id, target_status)

    if action in (Action.CREATE, Action.UPDATE, Action.DELETE) and isinstance(
        resource, party_models.Organization
    ):
        if caller.is_approver_for(organization_id):
            return _allow("organization approver")
        return _deny("Only CAF approvers can manage organization staff")

    return _allow("organization member")


def _authorize_caf(
    caller: CallerContext,
    caf: Any,
    action: Action,
    organization_id: Optional[str],
    target_status: Optional[str],
) -> AccessDecision:
    if action in (Action.VIEW, Action.ATTACH):
        return _allow("organization member")

    if action in (Action.CREATE, Action.DELETE, Action.GENERATE, Action.APPROVE):
        if caller.is_approver_for(organization_id):
            return _allow("organization approver")
        return _deny("Insufficient permissions for this operation")

    if action in (Action.UPDATE, Action.TRANSITION):
        assigned_staff_id = getattr(caf, "assigned_staff_id", None)
        if assigned_staff_id and any(s.id == assigned_staff_id for s in caller.staff):
            return _allow("assigned staff")
        if target_status == "APPROVED" and caller.is_approver_for(organization_id):
            return _allow("organization approver")
        return _deny("Insufficient permissions for this operation")

    return _deny("Access denied")


def ensure_allowed(decision: AccessDecision) -> None:
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=decision.reason or "Access denied",
        )


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def get_current_caller(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> CallerContext:
    return resolve_caller(db, identity.user_id)
