from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..audit import services as audit_services

from .registry import WORKFLOWS


@dataclass
class TransitionError(Exception):
    code: str
    detail: List[Dict[str, str]]
    message: str = ""

    def __str__(self) -> str:
        if self.message:
            return self.message
        return "; ".join(item.get("reason", "") for item in self.detail) or self.code


def _state(value: Any) -> str:
    return getattr(value, "value", value)


def _extract_organization_id(before_obj: Any, after_obj: Any) -> Optional[str]:
    for obj in (after_obj, before_obj):
        if isinstance(obj, dict) and obj.get("organization_id"):
            return obj.get("organization_id")
        organization_id = getattr(obj, "organization_id", None)
        if organization_id:
            return organization_id
    return None


def is_transition_allowed(entity_type: str, from_state: Any, to_state: Any) -> bool:
    transitions = WORKFLOWS.get(entity_type, {}).get("transitions", {})
    return _state(to_state) in transitions.get(_state(from_state), {})


def apply_transition(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: Any,
    to_state: Any,
    before_obj: Any,
    after_obj: Any,
    correlation_id: Optional[str] = None,
    critical: bool = True,
) -> None:
    """
    Validate a state change against the registered workflow, run its guards
    and record a `transition` audit event.

    Nothing is mutated here: callers apply the new state only after this
    returns, so a rejected transition leaves the entity untouched.
    """
    from_state = _state(from_state)
    to_state = _state(to_state)

    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    transitions = workflow.get("transitions", {})
    allowed = transitions.get(from_state, {})
    guards = allowed.get(to_state)

    if guards is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": f"Cannot transition from {from_state} to {to_state}"}],
            message=f"Invalid status transition from {from_state} to {to_state}",
        )

    failures: List[Dict[str, str]] = []
    for guard in guards:
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )

    if failures:
        raise TransitionError(
            code="missing_requirements",
            detail=failures,
            message=f"Cannot transition from {from_state} to {to_state}: requirements not met",
        )

    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": to_state}
    if isinstance(before_obj, dict):
        before_payload.update({k: v for k, v in before_obj.items() if k != "organization_id"})
    if isinstance(after_obj, dict):
        after_payload.update({k: v for k, v in after_obj.items() if k != "organization_id"})

    organization_id = _extract_organization_id(before_obj, after_obj)
    if not organization_id:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "organization_id", "reason": "Unable to resolve organization for transition"}],
        )

    audit_services.log_event(
        db,
        organization_id=organization_id,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action="transition",
        before=before_payload,
        after=after_payload,
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
        critical=critical,
    )
