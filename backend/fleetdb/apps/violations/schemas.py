from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .enums import ResponsibilityType, SourceViolationType, ViolationSeverity


class ViolationCodeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    description: str
    source_type: SourceViolationType
    responsibility_type: ResponsibilityType
    cfr_part: Optional[int] = None
    cfr_section: Optional[str] = None
    total_inspections: Optional[int] = None
    total_violations: Optional[int] = None
    percent_of_total: Optional[float] = None
    oos_violations: Optional[int] = None
    oos_percent: Optional[float] = None
    is_high_risk: bool
    is_critical: bool
    risk_score: float
    updated_at: datetime


class ViolationSearchResult(BaseModel):
    code: str
    section: str
    description: str
    violation_type: ResponsibilityType
    severity: ViolationSeverity
    is_high_risk: bool = False
    is_critical: bool = False


class CatalogRow(BaseModel):
    """One parsed line of the roadside-violation statistics CSV."""

    code: str
    raw_type: str
    description: str
    total_inspections: Optional[int] = None
    total_violations: Optional[int] = None
    percent_of_total: Optional[float] = None
    oos_violations: Optional[int] = None
    oos_percent: Optional[float] = None
