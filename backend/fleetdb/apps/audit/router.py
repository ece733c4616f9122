from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...authorization import CallerContext, get_current_caller
from ...database import get_read_db

from . import schemas, services


router = APIRouter(tags=["audit"])


@router.get("/audit-events", response_model=List[schemas.AuditEventRead])
def list_audit_events(
    organization_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_read_db),
    caller: CallerContext = Depends(get_current_caller),
):
    if caller.is_master:
        organization_ids = [organization_id] if organization_id else None
    else:
        visible = set(caller.organization_ids)
        if organization_id:
            visible &= {organization_id}
        organization_ids = sorted(visible)

    return services.list_audit_events(
        db,
        organization_ids=organization_ids,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        start=start,
        end=end,
        limit=limit,
    )
