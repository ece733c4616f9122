from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple, TypeVar

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _insert_or_get(db: Session, obj: T, lookup: Callable[[], Optional[T]]) -> Tuple[T, bool]:
    """
    Insert `obj` inside a savepoint; when a unique constraint rejects it,
    return the row that won instead. Returns (row, created).
    """
    try:
        with db.begin_nested():
            db.add(obj)
            db.flush()
        return obj, True
    except IntegrityError:
        existing = lookup()
        if existing is None:
            raise
        return existing, False


# ---------------------------------------------------------------------------
# PERSONS
# ---------------------------------------------------------------------------


def get_person_by_user_id(db: Session, user_id: str) -> Optional[models.Person]:
    return db.query(models.Person).filter(models.Person.user_id == user_id).first()


def ensure_person(
    db: Session,
    *,
    user_id: Optional[str],
    first_name: str,
    last_name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> models.Person:
    """Create the person for an identity, or return the one already linked."""
    person = models.Person(
        user_id=user_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
    )
    if not user_id:
        db.add(person)
        db.flush()
        return person

    row, created = _insert_or_get(db, person, lambda: get_person_by_user_id(db, user_id))
    if created:
        logger.info("Person onboarded", extra={"person_id": row.id, "user_id": user_id})
    return row


def onboard_person(db: Session, *, user_id: str, payload: schemas.PersonCreate) -> models.Person:
    return ensure_person(
        db,
        user_id=user_id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        phone=payload.phone,
    )


# ---------------------------------------------------------------------------
# ROLES
# ---------------------------------------------------------------------------


def ensure_role(
    db: Session,
    *,
    person: models.Person,
    role_type: models.RoleType,
    organization_id: Optional[str],
    location_id: Optional[str] = None,
) -> models.Role:
    def _lookup() -> Optional[models.Role]:
        return (
            db.query(models.Role)
            .filter(
                models.Role.person_id == person.id,
                models.Role.role_type == role_type,
                models.Role.organization_id == organization_id,
            )
            .first()
        )

    existing = _lookup()
    if existing is not None:
        if not existing.is_active:
            existing.is_active = True
            db.flush()
        return existing

    role = models.Role(
        person_id=person.id,
        role_type=role_type,
        organization_id=organization_id,
        location_id=location_id,
        is_active=True,
    )
    row, _ = _insert_or_get(db, role, _lookup)
    return row


def list_roles(db: Session, *, person_id: str) -> List[models.Role]:
    return (
        db.query(models.Role)
        .filter(models.Role.person_id == person_id, models.Role.is_active.is_(True))
        .order_by(models.Role.created_at.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# ORGANIZATIONS
# ---------------------------------------------------------------------------


def get_master_organization(db: Session, user_id: str) -> Optional[models.Organization]:
    return (
        db.query(models.Organization)
        .filter(models.Organization.master_owner_user_id == user_id)
        .first()
    )


def ensure_master_organization(
    db: Session,
    *,
    person: models.Person,
    name: Optional[str] = None,
) -> models.Organization:
    """
    Idempotently provision the master organization owned by `person`.

    The unique `master_owner_user_id` column arbitrates concurrent callers:
    the loser's insert is rolled back to its savepoint and the winner's row
    is returned. The MASTER role is ensured either way.
    """
    owner_user_id = person.user_id
    if not owner_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Person is not linked to a user identity",
        )

    existing = get_master_organization(db, owner_user_id)
    if existing is None:
        organization = models.Organization(
            name=name or f"{person.full_name} Master Organization",
            is_master=True,
            master_owner_user_id=owner_user_id,
        )
        existing, created = _insert_or_get(
            db,
            organization,
            lambda: get_master_organization(db, owner_user_id),
        )
        if created:
            logger.info(
                "Master organization created",
                extra={"organization_id": existing.id, "user_id": owner_user_id},
            )

    ensure_role(
        db,
        person=person,
        role_type=models.RoleType.MASTER,
        organization_id=existing.id,
    )
    return existing


def get_organization(db: Session, organization_id: str) -> Optional[models.Organization]:
    return db.query(models.Organization).filter(models.Organization.id == organization_id).first()


def get_organization_or_404(db: Session, organization_id: str) -> models.Organization:
    organization = get_organization(db, organization_id)
    if organization is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return organization


def create_organization(
    db: Session,
    *,
    payload: schemas.OrganizationCreate,
    master_organization_id: Optional[str],
) -> models.Organization:
    if master_organization_id:
        master = get_organization_or_404(db, master_organization_id)
        if not master.is_master:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="master_organization_id must reference a master organization",
            )

    organization = models.Organization(
        name=payload.name.strip(),
        dot_number=payload.dot_number,
        mc_number=payload.mc_number,
        is_master=False,
        master_organization_id=master_organization_id,
    )
    db.add(organization)
    db.flush()
    return organization


# ---------------------------------------------------------------------------
# STAFF
# ---------------------------------------------------------------------------


def get_staff(db: Session, staff_id: str) -> Optional[models.Staff]:
    return db.query(models.Staff).filter(models.Staff.id == staff_id).first()


def list_staff(db: Session, *, organization_id: str, active_only: bool = True) -> List[models.Staff]:
    qs = db.query(models.Staff).filter(models.Staff.organization_id == organization_id)
    if active_only:
        qs = qs.filter(models.Staff.is_active.is_(True))
    return qs.order_by(models.Staff.created_at.asc()).all()


def first_approver(db: Session, *, organization_id: str) -> Optional[models.Staff]:
    """Earliest active staff member of the organization who can approve CAFs."""
    return (
        db.query(models.Staff)
        .filter(
            models.Staff.organization_id == organization_id,
            models.Staff.can_approve_cafs.is_(True),
            models.Staff.is_active.is_(True),
        )
        .order_by(models.Staff.created_at.asc(), models.Staff.id.asc())
        .first()
    )


def create_staff(
    db: Session,
    *,
    organization: models.Organization,
    payload: schemas.StaffCreate,
) -> models.Staff:
    if payload.person_id:
        person = db.query(models.Person).filter(models.Person.id == payload.person_id).first()
        if person is None:
            raise HTTPException(status_code=404, detail="Person not found")
    else:
        if not payload.first_name or not payload.last_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="first_name and last_name are required when person_id is not given",
            )
        person = ensure_person(
            db,
            user_id=payload.user_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
        )

    staff = models.Staff(
        person_id=person.id,
        organization_id=organization.id,
        position=payload.position,
        department=payload.department,
        can_sign_cafs=payload.can_sign_cafs,
        can_approve_cafs=payload.can_approve_cafs,
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(staff)
            db.flush()
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Person is already a staff member of this organization",
        )

    ensure_role(
        db,
        person=person,
        role_type=models.RoleType.ORGANIZATION,
        organization_id=organization.id,
    )
    logger.info(
        "Staff member added",
        extra={"staff_id": staff.id, "organization_id": organization.id},
    )
    return staff
