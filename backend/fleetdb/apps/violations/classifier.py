"""
Violation classification.

Maps a regulatory violation code (e.g. "393.75(a)") to the party
responsible for correcting it, the CAF category, and a default priority and
due window. Also carries the catalog risk metrics derived from roadside
inspection statistics.

Rules are scanned in declaration order and the first prefix match wins, so
the more specific "392.2A" entry must stay ahead of broader prefixes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..cafs.enums import CafCategory, CafPriority
from .enums import ResponsibilityType, SourceViolationType, ViolationSeverity

CFR_PART_RE = re.compile(r"^(\d{3})\.")

HIGH_RISK_OOS_PERCENT = 5.0
CRITICAL_OOS_PERCENT = 10.0
VOLUME_DIVISOR = 1000
VOLUME_FACTOR_CAP = 5


@dataclass(frozen=True)
class CafRule:
    responsibility: ResponsibilityType
    category: CafCategory
    priority: CafPriority
    due_days: int
    requires_approval: bool = True


CAF_RULES: Tuple[Tuple[str, CafRule], ...] = (
    ("392.2A", CafRule(ResponsibilityType.DRIVER, CafCategory.DRIVER_PERFORMANCE, CafPriority.HIGH, 3)),
    ("391.", CafRule(ResponsibilityType.DRIVER, CafCategory.DRIVER_QUALIFICATION, CafPriority.HIGH, 3)),
    ("393.", CafRule(ResponsibilityType.EQUIPMENT, CafCategory.EQUIPMENT_MAINTENANCE, CafPriority.MEDIUM, 7)),
    ("396.", CafRule(ResponsibilityType.EQUIPMENT, CafCategory.EQUIPMENT_MAINTENANCE, CafPriority.HIGH, 3)),
    ("390.", CafRule(ResponsibilityType.COMPANY, CafCategory.COMPANY_OPERATIONS, CafPriority.MEDIUM, 7)),
)

DEFAULT_RULE = CafRule(ResponsibilityType.COMPANY, CafCategory.OTHER, CafPriority.MEDIUM, 7)

_SOURCE_TYPES = {
    "vehicle": SourceViolationType.EQUIPMENT,
    "driver": SourceViolationType.DRIVER,
    "other": SourceViolationType.COMPANY,
}


@dataclass(frozen=True)
class Classification:
    code: str
    rule: CafRule
    matched_prefix: Optional[str]
    cfr_part: Optional[int]
    source_type: Optional[SourceViolationType]

    @property
    def responsibility(self) -> ResponsibilityType:
        return self.rule.responsibility

    @property
    def category(self) -> CafCategory:
        return self.rule.category

    @property
    def priority(self) -> CafPriority:
        return self.rule.priority

    @property
    def due_days(self) -> int:
        return self.rule.due_days


@dataclass(frozen=True)
class RiskMetrics:
    is_high_risk: bool
    is_critical: bool
    risk_score: float


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def match_rule(code: Optional[str]) -> Tuple[Optional[str], CafRule]:
    normalized = normalize_code(code)
    for prefix, rule in CAF_RULES:
        if normalized.startswith(prefix):
            return prefix, rule
    return None, DEFAULT_RULE


def rule_for_code(code: Optional[str]) -> CafRule:
    return match_rule(code)[1]


def extract_cfr_part(code: Optional[str]) -> Optional[int]:
    match = CFR_PART_RE.match((code or "").strip())
    return int(match.group(1)) if match else None


def map_source_type(raw_type: Optional[str]) -> SourceViolationType:
    return _SOURCE_TYPES.get((raw_type or "").strip().lower(), SourceViolationType.OTHER)


def classify(code: str, raw_type: Optional[str] = None) -> Classification:
    """
    Classify a violation code. `raw_type` only feeds the catalog source type;
    it never overrides the code-derived responsibility or category.
    """
    prefix, rule = match_rule(code)
    return Classification(
        code=(code or "").strip(),
        rule=rule,
        matched_prefix=prefix,
        cfr_part=extract_cfr_part(code),
        source_type=map_source_type(raw_type) if raw_type is not None else None,
    )


def calculate_risk_metrics(
    oos_percent: Optional[float],
    total_violations: Optional[int],
) -> RiskMetrics:
    is_high_risk = oos_percent is not None and oos_percent > HIGH_RISK_OOS_PERCENT
    is_critical = oos_percent is not None and oos_percent > CRITICAL_OOS_PERCENT

    risk_score = 0.0
    if oos_percent is not None and total_violations is not None:
        volume_factor = min(total_violations / VOLUME_DIVISOR, VOLUME_FACTOR_CAP)
        risk_score = oos_percent * volume_factor

    return RiskMetrics(is_high_risk=is_high_risk, is_critical=is_critical, risk_score=risk_score)


def infer_severity(source_type: Optional[str]) -> ViolationSeverity:
    """Catalog rows carry no severity; infer a default from the source type."""
    value = (source_type or "").upper()
    if "DRIVER" in value:
        return ViolationSeverity.OUT_OF_SERVICE
    if "EQUIPMENT" in value or "VEHICLE" in value:
        return ViolationSeverity.WARNING
    return ViolationSeverity.CITATION
