from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_read_db
from ...security import Identity, get_current_identity

from . import schemas, services


router = APIRouter(prefix="/violations", tags=["violations"])


@router.get("/search", response_model=List[schemas.ViolationSearchResult])
def search_violations(
    q: Optional[str] = None,
    db: Session = Depends(get_read_db),
    identity: Identity = Depends(get_current_identity),
):
    return services.search_violation_codes(db, q)
