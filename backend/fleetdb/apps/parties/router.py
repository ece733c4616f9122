from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...authorization import Action, CallerContext, authorize, ensure_allowed, get_current_caller
from ...database import get_db
from ...security import Identity, get_current_identity
from . import schemas, services


router = APIRouter(tags=["parties"])


@router.post(
    "/parties/persons",
    response_model=schemas.PersonRead,
    status_code=status.HTTP_201_CREATED,
)
def onboard_person(
    payload: schemas.PersonCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    person = services.onboard_person(db, user_id=identity.user_id, payload=payload)
    db.commit()
    db.refresh(person)
    return person


@router.post(
    "/organizations/master",
    response_model=schemas.MasterOrganizationRead,
)
def ensure_master_organization(
    payload: schemas.MasterOrganizationCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    if caller.person is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Create your person record before provisioning a master organization",
        )
    organization = services.ensure_master_organization(db, person=caller.person, name=payload.name)
    db.commit()
    db.refresh(organization)
    return schemas.MasterOrganizationRead(
        organization=schemas.OrganizationRead.model_validate(organization),
        roles=[schemas.RoleRead.model_validate(r) for r in services.list_roles(db, person_id=caller.person.id)],
    )


@router.post(
    "/organizations",
    response_model=schemas.OrganizationRead,
    status_code=status.HTTP_201_CREATED,
)
def create_organization(
    payload: schemas.OrganizationCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    if not caller.is_master:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only master users can create organizations",
        )

    master_organization_id = payload.master_organization_id
    if master_organization_id is None and caller.master_organization_ids:
        master_organization_id = sorted(caller.master_organization_ids)[0]

    organization = services.create_organization(
        db,
        payload=payload,
        master_organization_id=master_organization_id,
    )
    db.commit()
    db.refresh(organization)
    return organization


@router.get(
    "/organizations/{organization_id}/staff",
    response_model=List[schemas.StaffRead],
)
def list_staff(
    organization_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    organization = services.get_organization_or_404(db, organization_id)
    ensure_allowed(authorize(caller, organization, Action.VIEW))
    return services.list_staff(db, organization_id=organization.id)


@router.post(
    "/organizations/{organization_id}/staff",
    response_model=schemas.StaffRead,
    status_code=status.HTTP_201_CREATED,
)
def create_staff(
    organization_id: str,
    payload: schemas.StaffCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    organization = services.get_organization_or_404(db, organization_id)
    ensure_allowed(authorize(caller, organization, Action.CREATE))
    staff = services.create_staff(db, organization=organization, payload=payload)
    db.commit()
    db.refresh(staff)
    return staff
