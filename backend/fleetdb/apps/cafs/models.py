# backend/fleetdb/apps/cafs/models.py
#
# Corrective Action Forms and their signatures / attachments.
#
# - caf_number is CAF-<year>-<seq>, unique, increasing within a year.
# - Signatures are unique per (CAF, staff, type); an APPROVAL signature needs
#   an earlier COMPLETION signature (enforced in signatures.py).
# - Once APPROVED a CAF is immutable: no delete, no attachment changes.

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7
from ..violations.enums import ResponsibilityType
from .enums import CafCategory, CafPriority, CafStatus, SignatureType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CorrectiveActionForm(Base):
    __tablename__ = "corrective_action_forms"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    caf_number = Column(String(32), nullable=False, unique=True, index=True)

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    incident_id = Column(
        String(36),
        ForeignKey("incidents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    violation_id = Column(
        String(36),
        ForeignKey("violations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    responsibility_type = Column(
        SAEnum(ResponsibilityType, name="caf_responsibility", native_enum=False),
        nullable=False,
    )
    violation_codes = Column(JSON, nullable=False, default=list)
    violation_summary = Column(Text, nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    corrective_actions = Column(Text, nullable=False)
    category = Column(
        SAEnum(CafCategory, name="caf_category", native_enum=False),
        nullable=False,
        default=CafCategory.OTHER,
    )
    priority = Column(
        SAEnum(CafPriority, name="caf_priority", native_enum=False),
        nullable=False,
        default=CafPriority.MEDIUM,
        index=True,
    )
    status = Column(
        SAEnum(CafStatus, name="caf_status", native_enum=False),
        nullable=False,
        default=CafStatus.ASSIGNED,
        index=True,
    )

    assigned_staff_id = Column(String(36), ForeignKey("staff.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by_staff_id = Column(String(36), ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id = Column(String(128), nullable=True)

    due_date = Column(Date, nullable=True, index=True)
    requires_approval = Column(Boolean, nullable=False, default=True)

    completion_notes = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_staff_id = Column(String(36), ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    assigned_staff = relationship("Staff", foreign_keys=[assigned_staff_id], lazy="joined")
    created_by_staff = relationship("Staff", foreign_keys=[created_by_staff_id])
    approved_by_staff = relationship("Staff", foreign_keys=[approved_by_staff_id])
    organization = relationship("Organization", foreign_keys=[organization_id])
    incident = relationship("Incident", foreign_keys=[incident_id])
    violation = relationship("Violation", foreign_keys=[violation_id])

    signatures = relationship(
        "CafSignature",
        back_populates="caf",
        cascade="all, delete-orphan",
        order_by="CafSignature.signed_at",
        lazy="selectin",
    )
    attachments = relationship(
        "CafAttachment",
        back_populates="caf",
        cascade="all, delete-orphan",
        order_by="CafAttachment.created_at",
    )

    __table_args__ = (
        Index("ix_cafs_org_status", "organization_id", "status"),
        Index("ix_cafs_incident_active", "incident_id", "is_active"),
    )

    def has_signature(self, signature_type: SignatureType) -> bool:
        return any(s.signature_type == signature_type for s in self.signatures)

    def __repr__(self) -> str:
        return f"<CorrectiveActionForm {self.caf_number} status={self.status}>"


class CafSignature(Base):
    __tablename__ = "caf_signatures"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    caf_id = Column(
        String(36),
        ForeignKey("corrective_action_forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_id = Column(String(36), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    signature_type = Column(
        SAEnum(SignatureType, name="caf_signature_type", native_enum=False),
        nullable=False,
    )
    # Opaque payload captured by the client (e.g. a data-URL drawing).
    digital_signature = Column(Text, nullable=False)
    signed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    ip_address = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    signed_by_user_id = Column(String(128), nullable=True)

    caf = relationship("CorrectiveActionForm", back_populates="signatures")
    staff = relationship("Staff", lazy="joined")

    __table_args__ = (
        UniqueConstraint("caf_id", "staff_id", "signature_type", name="uq_caf_signatures_caf_staff_type"),
    )

    def __repr__(self) -> str:
        return f"<CafSignature caf={self.caf_id} staff={self.staff_id} type={self.signature_type}>"


class CafAttachment(Base):
    """Metadata for a file held in external storage."""

    __tablename__ = "caf_attachments"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    caf_id = Column(
        String(36),
        ForeignKey("corrective_action_forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(128), nullable=True)
    size_bytes = Column(Integer, nullable=True)
    storage_key = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)
    uploaded_by_user_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    caf = relationship("CorrectiveActionForm", back_populates="attachments")

    def __repr__(self) -> str:
        return f"<CafAttachment caf={self.caf_id} file={self.file_name!r}>"
