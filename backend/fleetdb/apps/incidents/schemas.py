"""
Pydantic schemas for incidents.

Incident payloads are a tagged union on `incident_type`: each subtype has
its own explicit fields rather than a free-form details blob.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..violations.enums import ResponsibilityType, ViolationSeverity
from .models import IncidentStatus, IncidentType


# ---------------- VIOLATIONS ----------------


class ViolationCreate(BaseModel):
    violation_code: str = Field(min_length=1, max_length=64)
    section: Optional[str] = None
    description: str = Field(min_length=1)
    severity: ViolationSeverity = ViolationSeverity.WARNING
    # Derived from the violation code when omitted.
    responsibility_type: Optional[ResponsibilityType] = None
    out_of_service: bool = False
    out_of_service_date: Optional[date] = None
    citation_number: Optional[str] = None
    inspector_comments: Optional[str] = None
    unit_number: Optional[int] = None


class ViolationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    incident_id: str
    violation_code: str
    section: Optional[str] = None
    description: str
    severity: ViolationSeverity
    responsibility_type: Optional[ResponsibilityType] = None
    out_of_service: bool
    out_of_service_date: Optional[date] = None
    citation_number: Optional[str] = None
    inspector_comments: Optional[str] = None
    unit_number: Optional[int] = None
    line_number: int
    created_at: datetime


class ViolationsAdd(BaseModel):
    violations: List[ViolationCreate] = Field(min_length=1)


# ---------------- INCIDENTS ----------------


class _IncidentBase(BaseModel):
    organization_id: str
    driver_id: Optional[str] = None
    equipment_id: Optional[str] = None

    title: Optional[str] = None
    description: Optional[str] = None

    incident_date: date
    incident_time: Optional[str] = Field(default=None, max_length=8)

    officer_name: Optional[str] = None
    officer_badge: Optional[str] = None
    agency_name: Optional[str] = None
    report_number: Optional[str] = None

    location_address: Optional[str] = None
    location_city: Optional[str] = None
    location_state: Optional[str] = Field(default=None, max_length=8)
    location_zip: Optional[str] = None

    violations: List[ViolationCreate] = []


class AccidentCreate(_IncidentBase):
    incident_type: Literal["ACCIDENT"]

    fatalities: int = Field(default=0, ge=0)
    injuries: int = Field(default=0, ge=0)
    tow_away: bool = False
    hazmat_released: bool = False
    citation_issued: bool = False
    is_preventable: Optional[bool] = None
    weather_conditions: Optional[str] = None
    road_conditions: Optional[str] = None


class RoadsideInspectionCreate(_IncidentBase):
    incident_type: Literal["ROADSIDE_INSPECTION"]

    inspection_level: Optional[int] = Field(default=None, ge=1, le=6)
    inspection_facility: Optional[str] = None
    cvsa_decal_issued: bool = False
    out_of_service_placed: bool = False


IncidentCreate = Annotated[
    Union[AccidentCreate, RoadsideInspectionCreate],
    Field(discriminator="incident_type"),
]


class _IncidentReadBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    incident_type: IncidentType
    organization_id: str
    driver_id: Optional[str] = None
    equipment_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    incident_date: date
    incident_time: Optional[str] = None
    officer_name: Optional[str] = None
    officer_badge: Optional[str] = None
    agency_name: Optional[str] = None
    report_number: Optional[str] = None
    location_address: Optional[str] = None
    location_city: Optional[str] = None
    location_state: Optional[str] = None
    location_zip: Optional[str] = None
    status: IncidentStatus
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    violations: List[ViolationRead] = []


class AccidentRead(_IncidentReadBase):
    fatalities: int
    injuries: int
    tow_away: bool
    hazmat_released: bool
    citation_issued: bool
    is_preventable: Optional[bool] = None
    weather_conditions: Optional[str] = None
    road_conditions: Optional[str] = None


class RoadsideInspectionRead(_IncidentReadBase):
    inspection_level: Optional[int] = None
    inspection_facility: Optional[str] = None
    cvsa_decal_issued: bool
    out_of_service_placed: bool


IncidentRead = Union[AccidentRead, RoadsideInspectionRead]


# ---------------- GENERATION / COMPLETION ----------------


class GenerateCafsResult(BaseModel):
    message: str
    cafs_created: int
    caf_ids: List[str] = []
    caf_numbers: List[str] = []


class CafCompletionItem(BaseModel):
    caf_id: str
    caf_number: str
    status: str
    has_completion_signature: bool
    has_approval: bool
    is_complete: bool


class IncidentCompletionSummary(BaseModel):
    incident_id: str
    status: IncidentStatus
    completed_at: Optional[datetime] = None
    total_cafs: int
    completed_cafs: int
    is_fully_remediated: bool
    cafs: List[CafCompletionItem] = []
