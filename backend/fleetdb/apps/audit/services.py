from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)


def _json_payload(value: Optional[dict]) -> Optional[dict]:
    if value is None:
        return None
    return jsonable_encoder(value)


def create_audit_event(
    db: Session,
    *,
    organization_id: str,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(
        organization_id=organization_id,
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        action=data.action,
        actor_user_id=data.actor_user_id,
        before=_json_payload(data.before),
        after=_json_payload(data.after),
        correlation_id=data.correlation_id,
        metadata_json=_json_payload(data.metadata),
    )
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    organization_id: str,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Best-effort audit event logger.
    - For critical actions (transitions), raise on failure.
    - For non-critical actions (signatures, generation), log a warning and continue.

    The insert runs in a savepoint so a failed write never poisons the
    caller's transaction.
    """
    try:
        with db.begin_nested():
            return create_audit_event(
                db,
                organization_id=organization_id,
                data=schemas.AuditEventCreate(
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    action=action,
                    actor_user_id=actor_user_id,
                    before=before,
                    after=after,
                    correlation_id=correlation_id,
                    metadata=metadata,
                ),
            )
    except Exception:
        logger.warning(
            "Failed to log audit event",
            extra={
                "organization_id": organization_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
            exc_info=True,
        )
        if critical:
            raise
        return None


def list_audit_events(
    db: Session,
    *,
    organization_ids: Optional[List[str]] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
) -> List[models.AuditEvent]:
    """
    `organization_ids=None` means unrestricted (master callers); an empty
    list means the caller can see nothing.
    """
    query = db.query(models.AuditEvent)
    if organization_ids is not None:
        if not organization_ids:
            return []
        query = query.filter(models.AuditEvent.organization_id.in_(organization_ids))
    if entity_type:
        query = query.filter(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditEvent.entity_id == entity_id)
    if action:
        query = query.filter(models.AuditEvent.action == action)
    if start:
        query = query.filter(models.AuditEvent.occurred_at >= start)
    if end:
        query = query.filter(models.AuditEvent.occurred_at <= end)
    return query.order_by(models.AuditEvent.occurred_at.desc()).limit(limit).all()


def snapshot(obj: Any, fields: List[str]) -> dict:
    """Pick `fields` off an ORM object for before/after payloads."""
    return {name: getattr(obj, name, None) for name in fields}
