from __future__ import annotations

import pytest

from fleetdb.apps.cafs.enums import CafCategory, CafPriority
from fleetdb.apps.violations import classifier
from fleetdb.apps.violations.enums import ResponsibilityType, SourceViolationType, ViolationSeverity


@pytest.mark.parametrize(
    "code, responsibility, category, priority, due_days",
    [
        ("392.2A", ResponsibilityType.DRIVER, CafCategory.DRIVER_PERFORMANCE, CafPriority.HIGH, 3),
        ("392.2a-speeding", ResponsibilityType.DRIVER, CafCategory.DRIVER_PERFORMANCE, CafPriority.HIGH, 3),
        ("391.11", ResponsibilityType.DRIVER, CafCategory.DRIVER_QUALIFICATION, CafPriority.HIGH, 3),
        ("393.75(a)", ResponsibilityType.EQUIPMENT, CafCategory.EQUIPMENT_MAINTENANCE, CafPriority.MEDIUM, 7),
        ("396.3(a)(1)", ResponsibilityType.EQUIPMENT, CafCategory.EQUIPMENT_MAINTENANCE, CafPriority.HIGH, 3),
        ("390.11", ResponsibilityType.COMPANY, CafCategory.COMPANY_OPERATIONS, CafPriority.MEDIUM, 7),
        ("395.8", ResponsibilityType.COMPANY, CafCategory.OTHER, CafPriority.MEDIUM, 7),
    ],
)
def test_classify_uses_first_matching_prefix(code, responsibility, category, priority, due_days):
    result = classifier.classify(code)

    assert result.responsibility == responsibility
    assert result.category == category
    assert result.priority == priority
    assert result.due_days == due_days


def test_unmatched_code_falls_back_to_default_rule():
    prefix, rule = classifier.match_rule("  ")

    assert prefix is None
    assert rule is classifier.DEFAULT_RULE


def test_raw_type_never_overrides_code_responsibility():
    result = classifier.classify("393.47", raw_type="Driver")

    assert result.responsibility == ResponsibilityType.EQUIPMENT
    assert result.source_type == SourceViolationType.DRIVER
    assert result.cfr_part == 393


def test_map_source_type():
    assert classifier.map_source_type("Vehicle") == SourceViolationType.EQUIPMENT
    assert classifier.map_source_type("driver") == SourceViolationType.DRIVER
    assert classifier.map_source_type("Other") == SourceViolationType.COMPANY
    assert classifier.map_source_type("Hazmat") == SourceViolationType.OTHER
    assert classifier.map_source_type(None) == SourceViolationType.OTHER


def test_extract_cfr_part():
    assert classifier.extract_cfr_part("393.75(a)") == 393
    assert classifier.extract_cfr_part("N/A") is None


def test_risk_metrics_for_high_oos_rate():
    metrics = classifier.calculate_risk_metrics(12.0, 2000)

    assert metrics.is_high_risk is True
    assert metrics.is_critical is True
    assert metrics.risk_score == pytest.approx(24.0)


def test_risk_metrics_thresholds_are_strict():
    at_high = classifier.calculate_risk_metrics(5.0, 100)
    at_critical = classifier.calculate_risk_metrics(10.0, 100)

    assert at_high.is_high_risk is False
    assert at_critical.is_high_risk is True
    assert at_critical.is_critical is False


def test_risk_score_volume_factor_is_capped():
    metrics = classifier.calculate_risk_metrics(2.0, 50_000)

    assert metrics.risk_score == pytest.approx(10.0)


def test_risk_metrics_without_statistics():
    metrics = classifier.calculate_risk_metrics(None, None)

    assert metrics.is_high_risk is False
    assert metrics.is_critical is False
    assert metrics.risk_score == 0.0


def test_infer_severity():
    assert classifier.infer_severity("Driver") == ViolationSeverity.OUT_OF_SERVICE
    assert classifier.infer_severity("Equipment") == ViolationSeverity.WARNING
    assert classifier.infer_severity(None) == ViolationSeverity.CITATION
