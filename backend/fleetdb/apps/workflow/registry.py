from __future__ import annotations

from .guards import guard_caf_approve, guard_incident_resolve

WORKFLOWS = {
    "corrective_action_form": {
        "transitions": {
            "ASSIGNED": {
                "IN_PROGRESS": [],
            },
            "IN_PROGRESS": {
                "COMPLETED": [],
                "ASSIGNED": [],
            },
            "COMPLETED": {
                "APPROVED": [guard_caf_approve],
                "REJECTED": [],
                "IN_PROGRESS": [],
            },
            "APPROVED": {},
            "REJECTED": {
                "IN_PROGRESS": [],
            },
            "CANCELLED": {},
        }
    },
    "incident": {
        "transitions": {
            "OPEN": {
                "PENDING": [],
                "RESOLVED": [guard_incident_resolve],
            },
            "PENDING": {
                "RESOLVED": [guard_incident_resolve],
            },
            "RESOLVED": {
                "PENDING": [],
            },
        }
    },
}
