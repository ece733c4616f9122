from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import PartyType, RoleType


class PersonCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=128)
    last_name: str = Field(min_length=1, max_length=128)
    email: Optional[str] = None
    phone: Optional[str] = None


class PersonRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    party_type: PartyType
    user_id: Optional[str] = None
    first_name: str
    last_name: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    created_at: datetime


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    dot_number: Optional[str] = None
    mc_number: Optional[str] = None
    # Defaults to the caller's own master organization.
    master_organization_id: Optional[str] = None


class MasterOrganizationCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)


class OrganizationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    dot_number: Optional[str] = None
    mc_number: Optional[str] = None
    is_master: bool
    master_organization_id: Optional[str] = None
    is_active: bool
    created_at: datetime


class StaffCreate(BaseModel):
    """
    Either link an existing person (`person_id`) or describe a new one.

    `user_id` links the new person to an identity-provider subject so the
    staff member can log in and sign.
    """

    person_id: Optional[str] = None
    user_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    position: Optional[str] = None
    department: Optional[str] = None
    can_sign_cafs: bool = False
    can_approve_cafs: bool = False


class StaffRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    person_id: str
    organization_id: str
    display_name: str
    position: Optional[str] = None
    department: Optional[str] = None
    can_sign_cafs: bool
    can_approve_cafs: bool
    is_active: bool
    created_at: datetime


class RoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    person_id: str
    role_type: RoleType
    organization_id: Optional[str] = None
    location_id: Optional[str] = None
    is_active: bool


class MasterOrganizationRead(BaseModel):
    organization: OrganizationRead
    roles: List[RoleRead] = []
