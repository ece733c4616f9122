from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, TextIO

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import classifier, models, schemas

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 25
# Title row and column header row precede the data.
CSV_HEADER_ROWS = 2


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    by_source_type: Dict[str, int] = field(default_factory=dict)
    high_risk: int = 0
    critical: int = 0


def parse_number(value: Optional[str]) -> Optional[int]:
    """'1,234' -> 1234; blanks and garbage -> None."""
    if value is None or not str(value).strip():
        return None
    try:
        return int(float(str(value).replace(",", "").strip()))
    except ValueError:
        return None


def parse_percentage(value: Optional[str]) -> Optional[float]:
    """'12.5%' -> 12.5; blanks and garbage -> None."""
    if value is None or not str(value).strip():
        return None
    try:
        return float(str(value).replace("%", "").replace(",", "").strip())
    except ValueError:
        return None


def read_catalog_csv(stream: TextIO) -> Iterator[List[str]]:
    reader = csv.reader(stream)
    for index, record in enumerate(reader):
        if index < CSV_HEADER_ROWS:
            continue
        if not record or not any(cell.strip() for cell in record):
            continue
        yield record


def parse_catalog_record(record: List[str]) -> Optional[schemas.CatalogRow]:
    """
    Columns: rank, code, type, description, inspections, violations,
    % of total, OOS violations, OOS %. Returns None for unusable rows.
    """
    padded = list(record) + [""] * (9 - len(record))
    _rank, code, raw_type, description, inspections, violations, pct_total, oos_violations, oos_pct = padded[:9]
    if not code.strip() or not description.strip() or not raw_type.strip():
        return None
    return schemas.CatalogRow(
        code=code.strip(),
        raw_type=raw_type.strip(),
        description=description.strip(),
        total_inspections=parse_number(inspections),
        total_violations=parse_number(violations),
        percent_of_total=parse_percentage(pct_total),
        oos_violations=parse_number(oos_violations),
        oos_percent=parse_percentage(oos_pct),
    )


def upsert_violation_code(
    db: Session,
    *,
    row: schemas.CatalogRow,
    data_source: Optional[str] = None,
) -> models.ViolationCode:
    classification = classifier.classify(row.code, row.raw_type)
    risk = classifier.calculate_risk_metrics(row.oos_percent, row.total_violations)

    values = {
        "description": row.description,
        "source_type": classification.source_type,
        "responsibility_type": classification.responsibility,
        "cfr_part": classification.cfr_part,
        "cfr_section": row.code,
        "total_inspections": row.total_inspections,
        "total_violations": row.total_violations,
        "percent_of_total": row.percent_of_total,
        "oos_violations": row.oos_violations,
        "oos_percent": row.oos_percent,
        "is_high_risk": risk.is_high_risk,
        "is_critical": risk.is_critical,
        "risk_score": risk.risk_score,
    }

    entry = db.query(models.ViolationCode).filter(models.ViolationCode.code == row.code).first()
    if entry is None:
        entry = models.ViolationCode(code=row.code, data_source=data_source, **values)
        db.add(entry)
    else:
        for key, value in values.items():
            setattr(entry, key, value)
        if data_source:
            entry.data_source = data_source
    db.flush()
    return entry


def import_catalog(
    db: Session,
    *,
    records: Iterable[List[str]],
    data_source: Optional[str] = None,
) -> ImportSummary:
    """
    Upsert every usable record. A failing row is logged and counted; it never
    aborts the rest of the import.
    """
    summary = ImportSummary()
    for record in records:
        code = record[1] if len(record) > 1 else None
        try:
            row = parse_catalog_record(record)
            if row is None:
                summary.skipped += 1
                continue
            with db.begin_nested():
                entry = upsert_violation_code(db, row=row, data_source=data_source)
        except (ValueError, SQLAlchemyError):
            summary.errors += 1
            logger.warning("Failed to import violation row", extra={"violation_code": code}, exc_info=True)
            continue

        summary.imported += 1
        source_key = entry.source_type.value if entry.source_type else "Other"
        summary.by_source_type[source_key] = summary.by_source_type.get(source_key, 0) + 1
        if entry.is_high_risk:
            summary.high_risk += 1
        if entry.is_critical:
            summary.critical += 1
        if summary.imported % 100 == 0:
            logger.info("Violation import progress", extra={"imported": summary.imported})

    return summary


def search_violation_codes(db: Session, query: Optional[str]) -> List[schemas.ViolationSearchResult]:
    term = (query or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return []

    pattern = f"%{term.lower()}%"
    rows = (
        db.query(models.ViolationCode)
        .filter(
            or_(
                func.lower(models.ViolationCode.code).like(pattern),
                func.lower(models.ViolationCode.description).like(pattern),
                func.lower(models.ViolationCode.cfr_section).like(pattern),
            )
        )
        .order_by(models.ViolationCode.code.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )

    results = []
    for row in rows:
        source_type = row.source_type.value if row.source_type else None
        results.append(
            schemas.ViolationSearchResult(
                code=row.code,
                section=row.cfr_section or f"49 CFR {row.code}",
                description=row.description,
                violation_type=classifier.rule_for_code(row.code).responsibility,
                severity=classifier.infer_severity(source_type),
                is_high_risk=row.is_high_risk,
                is_critical=row.is_critical,
            )
        )
    return results
