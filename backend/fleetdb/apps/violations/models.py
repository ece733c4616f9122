from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
)

from ...database import Base
from ...utils.identifiers import generate_uuid7
from .enums import ResponsibilityType, SourceViolationType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ViolationCode(Base):
    """
    Catalog of regulatory violation codes with roadside-inspection statistics.

    Rows are upserted by `code` from the published statistics CSV.
    """

    __tablename__ = "violation_codes"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    code = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False)

    source_type = Column(
        SAEnum(SourceViolationType, name="violation_source_type", native_enum=False),
        nullable=False,
        default=SourceViolationType.OTHER,
        index=True,
    )
    responsibility_type = Column(
        SAEnum(ResponsibilityType, name="violation_code_responsibility", native_enum=False),
        nullable=False,
        index=True,
    )
    cfr_part = Column(Integer, nullable=True, index=True)
    cfr_section = Column(String(64), nullable=True)

    total_inspections = Column(Integer, nullable=True)
    total_violations = Column(Integer, nullable=True)
    percent_of_total = Column(Float, nullable=True)
    oos_violations = Column(Integer, nullable=True)
    oos_percent = Column(Float, nullable=True)

    is_high_risk = Column(Boolean, nullable=False, default=False, index=True)
    is_critical = Column(Boolean, nullable=False, default=False, index=True)
    risk_score = Column(Float, nullable=False, default=0.0)

    data_source = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_violation_codes_risk", "is_critical", "risk_score"),
    )

    def __repr__(self) -> str:
        return f"<ViolationCode code={self.code} oos%={self.oos_percent}>"
