from __future__ import annotations

import enum


class ViolationSeverity(str, enum.Enum):
    WARNING = "WARNING"
    CITATION = "CITATION"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class ResponsibilityType(str, enum.Enum):
    DRIVER = "DRIVER"
    EQUIPMENT = "EQUIPMENT"
    COMPANY = "COMPANY"


class SourceViolationType(str, enum.Enum):
    """Catalog type as published by the roadside-violation statistics."""

    EQUIPMENT = "Equipment"
    DRIVER = "Driver"
    COMPANY = "Company"
    OTHER = "Other"
