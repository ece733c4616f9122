# backend/fleetdb/apps/incidents/models.py
#
# Incidents (accidents and roadside inspections) and the violations cited in
# them. Incident is the common record; each subtype keeps its own typed
# columns in a joined table keyed by the incident id.

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7
from ..violations.enums import ResponsibilityType, ViolationSeverity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentType(str, enum.Enum):
    ACCIDENT = "ACCIDENT"
    ROADSIDE_INSPECTION = "ROADSIDE_INSPECTION"


class IncidentStatus(str, enum.Enum):
    OPEN = "OPEN"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    incident_type = Column(
        SAEnum(IncidentType, name="incident_type", native_enum=False),
        nullable=False,
        index=True,
    )
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    driver_id = Column(String(36), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True)
    equipment_id = Column(String(36), ForeignKey("equipment.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    incident_date = Column(Date, nullable=False, index=True)
    incident_time = Column(String(8), nullable=True)

    officer_name = Column(String(255), nullable=True)
    officer_badge = Column(String(64), nullable=True)
    agency_name = Column(String(255), nullable=True)
    report_number = Column(String(64), nullable=True, index=True)

    location_address = Column(String(255), nullable=True)
    location_city = Column(String(128), nullable=True)
    location_state = Column(String(8), nullable=True)
    location_zip = Column(String(16), nullable=True)

    status = Column(
        SAEnum(IncidentStatus, name="incident_status", native_enum=False),
        nullable=False,
        default=IncidentStatus.OPEN,
        index=True,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_by_user_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    violations = relationship(
        "Violation",
        back_populates="incident",
        cascade="all, delete-orphan",
        order_by="[Violation.line_number, Violation.created_at]",
        lazy="selectin",
    )

    __mapper_args__ = {"polymorphic_on": incident_type}

    __table_args__ = (
        Index("ix_incidents_org_status", "organization_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Incident id={self.id} type={self.incident_type} status={self.status}>"


class Accident(Incident):
    __tablename__ = "accidents"

    id = Column(String(36), ForeignKey("incidents.id", ondelete="CASCADE"), primary_key=True)

    fatalities = Column(Integer, nullable=False, default=0)
    injuries = Column(Integer, nullable=False, default=0)
    tow_away = Column(Boolean, nullable=False, default=False)
    hazmat_released = Column(Boolean, nullable=False, default=False)
    citation_issued = Column(Boolean, nullable=False, default=False)
    is_preventable = Column(Boolean, nullable=True)
    weather_conditions = Column(String(64), nullable=True)
    road_conditions = Column(String(64), nullable=True)

    __mapper_args__ = {"polymorphic_identity": IncidentType.ACCIDENT}

    __table_args__ = (
        CheckConstraint("fatalities >= 0", name="ck_accidents_fatalities"),
        CheckConstraint("injuries >= 0", name="ck_accidents_injuries"),
    )

    @property
    def is_dot_recordable(self) -> bool:
        return bool(self.fatalities or self.injuries or self.tow_away)


class RoadsideInspection(Incident):
    __tablename__ = "roadside_inspections"

    id = Column(String(36), ForeignKey("incidents.id", ondelete="CASCADE"), primary_key=True)

    inspection_level = Column(Integer, nullable=True)
    inspection_facility = Column(String(64), nullable=True)
    cvsa_decal_issued = Column(Boolean, nullable=False, default=False)
    out_of_service_placed = Column(Boolean, nullable=False, default=False)

    __mapper_args__ = {"polymorphic_identity": IncidentType.ROADSIDE_INSPECTION}

    __table_args__ = (
        CheckConstraint(
            "inspection_level IS NULL OR (inspection_level BETWEEN 1 AND 6)",
            name="ck_roadside_inspection_level",
        ),
    )


class Violation(Base):
    __tablename__ = "violations"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    incident_id = Column(
        String(36),
        ForeignKey("incidents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    violation_code = Column(String(64), nullable=False, index=True)
    section = Column(String(64), nullable=True)
    description = Column(Text, nullable=False)
    severity = Column(
        SAEnum(ViolationSeverity, name="violation_severity", native_enum=False),
        nullable=False,
        default=ViolationSeverity.WARNING,
    )
    responsibility_type = Column(
        SAEnum(ResponsibilityType, name="violation_responsibility", native_enum=False),
        nullable=True,
    )
    out_of_service = Column(Boolean, nullable=False, default=False)
    out_of_service_date = Column(Date, nullable=True)
    citation_number = Column(String(64), nullable=True)
    inspector_comments = Column(Text, nullable=True)
    unit_number = Column(Integer, nullable=True)
    # Position within the incident report; keeps generation order stable.
    line_number = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    incident = relationship("Incident", back_populates="violations")

    @property
    def is_out_of_service(self) -> bool:
        return bool(self.out_of_service) or self.severity == ViolationSeverity.OUT_OF_SERVICE

    def __repr__(self) -> str:
        return f"<Violation id={self.id} code={self.violation_code} oos={self.out_of_service}>"
