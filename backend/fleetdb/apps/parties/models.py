# backend/fleetdb/apps/parties/models.py
#
# Party hierarchy and tenancy:
# - Party is the common base record; Person / Organization / Equipment are
#   concrete subtypes stored in their own tables (joined-table inheritance),
#   discriminated by party_type.
# - Role links a person to the Master / Organization / Location tiers.
# - Staff records say who may sign or approve corrective action forms.

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PartyType(str, enum.Enum):
    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"
    EQUIPMENT = "EQUIPMENT"


class RoleType(str, enum.Enum):
    """Three-tier tenancy. MASTER sees every organization it manages."""

    MASTER = "MASTER"
    ORGANIZATION = "ORGANIZATION"
    LOCATION = "LOCATION"


class Party(Base):
    __tablename__ = "parties"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    party_type = Column(
        SAEnum(PartyType, name="party_type", native_enum=False),
        nullable=False,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"polymorphic_on": party_type}

    def __repr__(self) -> str:
        return f"<Party id={self.id} type={self.party_type}>"


class Person(Party):
    __tablename__ = "persons"

    id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), primary_key=True)

    # Subject issued by the external identity provider.
    user_id = Column(String(128), nullable=True, unique=True, index=True)

    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(64), nullable=True)

    roles = relationship("Role", back_populates="person", lazy="selectin")

    __mapper_args__ = {"polymorphic_identity": PartyType.PERSON}

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<Person id={self.id} name={self.full_name!r}>"


class Organization(Party):
    __tablename__ = "organizations"

    id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), primary_key=True)

    name = Column(String(255), nullable=False)
    dot_number = Column(String(32), nullable=True, index=True)
    mc_number = Column(String(32), nullable=True)

    is_master = Column(Boolean, nullable=False, default=False, index=True)
    master_organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Only set on master organizations; the unique index makes the
    # find-or-create onboarding path an idempotent upsert.
    master_owner_user_id = Column(String(128), nullable=True, unique=True)

    __mapper_args__ = {
        "polymorphic_identity": PartyType.ORGANIZATION,
        "inherit_condition": id == Party.id,
    }

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r} master={self.is_master}>"


class Equipment(Party):
    __tablename__ = "equipment"

    id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), primary_key=True)

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_number = Column(String(64), nullable=False)
    vin = Column(String(32), nullable=True, index=True)
    make = Column(String(64), nullable=True)
    model = Column(String(64), nullable=True)
    year = Column(Integer, nullable=True)

    __mapper_args__ = {
        "polymorphic_identity": PartyType.EQUIPMENT,
        "inherit_condition": id == Party.id,
    }

    __table_args__ = (
        UniqueConstraint("organization_id", "unit_number", name="uq_equipment_org_unit"),
        CheckConstraint("year IS NULL OR year >= 1900", name="ck_equipment_year"),
    )

    def __repr__(self) -> str:
        return f"<Equipment id={self.id} unit={self.unit_number}>"


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    city = Column(String(128), nullable=True)
    state_code = Column(String(8), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    person_id = Column(
        String(36),
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_type = Column(
        SAEnum(RoleType, name="role_type", native_enum=False),
        nullable=False,
        index=True,
    )
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    location_id = Column(
        String(36),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    person = relationship("Person", back_populates="roles", foreign_keys=[person_id])
    location = relationship("Location", lazy="joined")

    __table_args__ = (
        UniqueConstraint("person_id", "role_type", "organization_id", name="uq_roles_person_type_org"),
        Index("ix_roles_person_active", "person_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Role id={self.id} type={self.role_type} org={self.organization_id}>"


class Staff(Base):
    __tablename__ = "staff"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    person_id = Column(
        String(36),
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position = Column(String(128), nullable=True)
    department = Column(String(128), nullable=True)

    can_sign_cafs = Column(Boolean, nullable=False, default=False)
    can_approve_cafs = Column(Boolean, nullable=False, default=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    person = relationship("Person", lazy="joined", foreign_keys=[person_id])
    organization = relationship("Organization", lazy="joined", foreign_keys=[organization_id])

    __table_args__ = (
        UniqueConstraint("person_id", "organization_id", name="uq_staff_person_org"),
        Index("ix_staff_org_approver", "organization_id", "can_approve_cafs", "is_active"),
    )

    @property
    def display_name(self) -> str:
        return self.person.full_name if self.person else ""

    def __repr__(self) -> str:
        return f"<Staff id={self.id} org={self.organization_id} approve={self.can_approve_cafs}>"
