from __future__ import annotations

import io

import pytest

from fleetdb.apps.violations import models as violation_models
from fleetdb.apps.violations import services as violation_services
from fleetdb.apps.violations.enums import ResponsibilityType, SourceViolationType, ViolationSeverity

CATALOG_CSV = """Roadside Violations by Code,,,,,,,,
Rank,Code,Type,Description,Inspections,Violations,% of Total,OOS Violations,OOS %
1,393.75(a),Vehicle,Flat tire or fabric exposed,"10,000","2,000",5.5%,240,12%
2,392.2A,Driver,Speeding 6-10 miles per hour over the limit,500,300,1.2%,3,1%
,,,,,,,,
3,390.11,,Missing type,10,10,0%,0,0%
"""


def _import(db_session, text: str = CATALOG_CSV):
    summary = violation_services.import_catalog(
        db_session,
        records=violation_services.read_catalog_csv(io.StringIO(text)),
        data_source="catalog.csv",
    )
    db_session.commit()
    return summary


def test_parse_helpers():
    assert violation_services.parse_number("1,234") == 1234
    assert violation_services.parse_number("") is None
    assert violation_services.parse_number("n/a") is None
    assert violation_services.parse_percentage("12.5%") == pytest.approx(12.5)
    assert violation_services.parse_percentage(None) is None


def test_import_catalog_classifies_and_scores_rows(db_session):
    summary = _import(db_session)

    assert summary.imported == 2
    assert summary.skipped == 1
    assert summary.errors == 0
    assert summary.high_risk == 1
    assert summary.critical == 1
    assert summary.by_source_type == {"Equipment": 1, "Driver": 1}

    tire = (
        db_session.query(violation_models.ViolationCode)
        .filter(violation_models.ViolationCode.code == "393.75(a)")
        .one()
    )
    assert tire.source_type == SourceViolationType.EQUIPMENT
    assert tire.responsibility_type == ResponsibilityType.EQUIPMENT
    assert tire.cfr_part == 393
    assert tire.total_violations == 2000
    assert tire.risk_score == pytest.approx(24.0)
    assert tire.is_critical is True
    assert tire.data_source == "catalog.csv"


def test_reimport_updates_in_place(db_session):
    _import(db_session)
    updated = CATALOG_CSV.replace("240,12%", "10,0.5%")
    _import(db_session, updated)

    assert db_session.query(violation_models.ViolationCode).count() == 2
    tire = (
        db_session.query(violation_models.ViolationCode)
        .filter(violation_models.ViolationCode.code == "393.75(a)")
        .one()
    )
    assert tire.is_high_risk is False
    assert tire.oos_percent == pytest.approx(0.5)


def test_search_matches_code_and_description(db_session):
    _import(db_session)

    by_code = violation_services.search_violation_codes(db_session, "393")
    assert [r.code for r in by_code] == ["393.75(a)"]
    assert by_code[0].violation_type == ResponsibilityType.EQUIPMENT
    assert by_code[0].severity == ViolationSeverity.WARNING
    assert by_code[0].is_critical is True

    by_text = violation_services.search_violation_codes(db_session, "SPEEDING")
    assert [r.code for r in by_text] == ["392.2A"]
    assert by_text[0].violation_type == ResponsibilityType.DRIVER
    assert by_text[0].section == "392.2A"


def test_search_ignores_short_queries(db_session):
    _import(db_session)

    assert violation_services.search_violation_codes(db_session, "3") == []
    assert violation_services.search_violation_codes(db_session, "  ") == []
    assert violation_services.search_violation_codes(db_session, None) == []
