#!/usr/bin/env python3
"""
Load the FMCSA violation catalog CSV into the violation code table.

    python -m fleetdb.scripts.import_violations path/to/violations.csv
"""

import argparse
import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy.orm import Session

from fleetdb.apps.violations import services
from fleetdb.database import WriteSessionLocal

logger = logging.getLogger(__name__)


def run_import(db: Session, path: Path, data_source: Optional[str] = None) -> services.ImportSummary:
    with path.open(newline="", encoding="utf-8-sig") as stream:
        summary = services.import_catalog(
            db,
            records=services.read_catalog_csv(stream),
            data_source=data_source or path.name,
        )
    db.commit()
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Import the violation code catalog from CSV.")
    parser.add_argument("csv_path", type=Path, help="Catalog CSV (title row, header row, then data).")
    parser.add_argument("--data-source", help="Label stored on each row. Defaults to the file name.")
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

    if not args.csv_path.exists():
        parser.error(f"File not found: {args.csv_path}")

    session = WriteSessionLocal()
    try:
        summary = run_import(session, args.csv_path, args.data_source)
    finally:
        session.close()

    print(f"Imported {summary.imported} violation code(s).")
    print(f"Skipped {summary.skipped} row(s); {summary.errors} error(s).")
    for source_type, count in sorted(summary.by_source_type.items()):
        print(f"- {source_type}: {count}")
    print(f"High risk: {summary.high_risk}; critical: {summary.critical}.")


if __name__ == "__main__":
    main()
