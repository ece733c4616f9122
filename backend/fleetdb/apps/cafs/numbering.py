"""
CAF numbering: CAF-<year>-<zero-padded sequence>.

The next number is derived from the highest existing number for the year.
Two writers can read the same maximum, so the insert runs in a savepoint and
a unique violation on `caf_number` triggers a fresh read and another attempt.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...utils.identifiers import caf_number_prefix, format_caf_number, parse_caf_sequence
from . import models

logger = logging.getLogger(__name__)

try:
    CAF_NUMBER_MAX_ATTEMPTS = max(1, int(os.getenv("CAF_NUMBER_MAX_ATTEMPTS", "5")))
except ValueError:
    CAF_NUMBER_MAX_ATTEMPTS = 5


def current_year() -> int:
    return datetime.now(timezone.utc).year


def generate_caf_number(db: Session, *, year: Optional[int] = None) -> str:
    year = year or current_year()
    prefix = caf_number_prefix(year)

    # Zero padding keeps lexical order numeric up to 9999; longer strings
    # (sequence 10000+) sort first by length.
    latest = (
        db.query(models.CorrectiveActionForm.caf_number)
        .filter(models.CorrectiveActionForm.caf_number.like(f"{prefix}%"))
        .order_by(
            func.length(models.CorrectiveActionForm.caf_number).desc(),
            models.CorrectiveActionForm.caf_number.desc(),
        )
        .first()
    )
    last_sequence = parse_caf_sequence(latest[0]) if latest else None
    return format_caf_number(year, (last_sequence or 0) + 1)


def is_caf_number_collision(exc: IntegrityError) -> bool:
    return "caf_number" in str(getattr(exc, "orig", None) or exc)


def insert_caf(
    db: Session,
    build: Callable[[str], models.CorrectiveActionForm],
    *,
    year: Optional[int] = None,
) -> models.CorrectiveActionForm:
    """
    Allocate a number, build the CAF with it and flush it in a savepoint.

    `build` is called once per attempt so a retried insert never reuses a
    rolled-back instance.
    """
    for attempt in range(1, CAF_NUMBER_MAX_ATTEMPTS + 1):
        caf_number = generate_caf_number(db, year=year)
        caf = build(caf_number)
        try:
            with db.begin_nested():
                db.add(caf)
                db.flush()
            return caf
        except IntegrityError as exc:
            if not is_caf_number_collision(exc):
                raise
            logger.warning(
                "CAF number collision, retrying",
                extra={"caf_number": caf_number, "attempt": attempt},
            )

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Could not allocate a unique CAF number, please retry",
    )
