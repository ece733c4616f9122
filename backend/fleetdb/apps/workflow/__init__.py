from .engine import TransitionError, apply_transition, is_transition_allowed
from .registry import WORKFLOWS

__all__ = ["TransitionError", "WORKFLOWS", "apply_transition", "is_transition_allowed"]
