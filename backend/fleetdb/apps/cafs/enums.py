from __future__ import annotations

import enum


class CafStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class CafPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CafCategory(str, enum.Enum):
    EQUIPMENT_MAINTENANCE = "EQUIPMENT_MAINTENANCE"
    DRIVER_QUALIFICATION = "DRIVER_QUALIFICATION"
    DRIVER_PERFORMANCE = "DRIVER_PERFORMANCE"
    COMPANY_OPERATIONS = "COMPANY_OPERATIONS"
    OTHER = "OTHER"


class SignatureType(str, enum.Enum):
    COMPLETION = "COMPLETION"
    APPROVAL = "APPROVAL"


TERMINAL_STATUSES = frozenset({CafStatus.APPROVED, CafStatus.CANCELLED})

# Longest allowed due window per priority, in days.
PRIORITY_DUE_DAYS = {
    CafPriority.CRITICAL: 1,
    CafPriority.HIGH: 3,
    CafPriority.MEDIUM: 7,
    CafPriority.LOW: 14,
}
