from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..violations.enums import ResponsibilityType
from .enums import CafCategory, CafPriority, CafStatus, SignatureType


# ---------------- STAFF SUMMARY ----------------


class StaffSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str
    position: Optional[str] = None
    department: Optional[str] = None


# ---------------- CAF ----------------


class CafCreate(BaseModel):
    """
    Manual CAF creation for a group of violations of one responsibility type.

    Title and description default to the grouped wording when omitted, and
    priority / due date default to the grouped severity.
    """

    organization_id: str
    incident_id: Optional[str] = None
    responsibility_type: ResponsibilityType
    violation_codes: List[str] = Field(min_length=1)
    assigned_staff_id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    corrective_actions: Optional[str] = None
    priority: Optional[CafPriority] = None
    due_date: Optional[date] = None
    requires_approval: bool = True


class CafUpdate(BaseModel):
    status: Optional[CafStatus] = None
    completion_notes: Optional[str] = None


class CafSignatureRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    staff_id: str
    signature_type: SignatureType
    signed_at: datetime
    ip_address: Optional[str] = None
    notes: Optional[str] = None
    staff: Optional[StaffSummary] = None


class CafAttachmentCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    storage_key: str = Field(min_length=1, max_length=512)
    content_type: Optional[str] = None
    size_bytes: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class CafAttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    caf_id: str
    file_name: str
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None
    storage_key: str
    description: Optional[str] = None
    uploaded_by_user_id: Optional[str] = None
    created_at: datetime


class CafRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    caf_number: str
    organization_id: str
    incident_id: Optional[str] = None
    violation_id: Optional[str] = None
    responsibility_type: ResponsibilityType
    violation_codes: List[str] = []
    violation_summary: Optional[str] = None
    title: str
    description: str
    corrective_actions: str
    category: CafCategory
    priority: CafPriority
    status: CafStatus
    assigned_staff_id: Optional[str] = None
    created_by_staff_id: Optional[str] = None
    due_date: Optional[date] = None
    requires_approval: bool
    completion_notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by_staff_id: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    assigned_staff: Optional[StaffSummary] = None
    signatures: List[CafSignatureRead] = []


# ---------------- SIGNATURES ----------------


class SignatureCreate(BaseModel):
    """
    Required fields are checked in the signature service so that a missing
    value yields a 400 with a readable message rather than a schema error.
    """

    signature_type: Optional[SignatureType] = None
    staff_id: Optional[str] = None
    digital_signature: Optional[str] = None
    notes: Optional[str] = None


class SignatureResult(BaseModel):
    signature: CafSignatureRead
    caf: CafRead
    message: str


# ---------------- PERMISSIONS ----------------


class OrganizationSummary(BaseModel):
    id: str
    name: str


class CafPermissions(BaseModel):
    can_create_cafs: bool
    user_type: str
    can_assign_cross_org: bool
    name: Optional[str] = None
    organization: Optional[OrganizationSummary] = None


# ---------------- EXPORT ----------------


class ExportParty(BaseModel):
    name: str
    position: Optional[str] = None


class ExportSignature(BaseModel):
    signature_type: SignatureType
    signer_name: str
    signer_position: Optional[str] = None
    signed_at: datetime
    digital_signature: str
    notes: Optional[str] = None


class CafExport(BaseModel):
    """Fixed field projection handed to the external PDF renderer."""

    file_name: str
    format: str
    caf_number: str
    title: str
    description: str
    corrective_actions: str
    violation_summary: str
    violation_codes: List[str] = []
    responsibility_type: str
    category: str
    priority: str
    status: str
    organization_name: Optional[str] = None
    incident_id: str
    assigned_to: Optional[ExportParty] = None
    created_by: Optional[ExportParty] = None
    approved_by: Optional[ExportParty] = None
    due_date: Optional[date] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    signatures: List[ExportSignature] = []
