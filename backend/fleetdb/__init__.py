"""
Import ORM models from each app so that Base.metadata.create_all() sees
every table. The model classes live in fleetdb/apps/*/models.py.
"""

from .apps.parties import models as parties_models          # persons, organizations, staff, roles
from .apps.violations import models as violations_models    # violation code catalog
from .apps.incidents import models as incidents_models      # accidents, inspections, cited violations
from .apps.cafs import models as cafs_models                # corrective action forms + signatures
from .apps.audit import models as audit_models              # audit trail

__all__ = [
    "parties_models",
    "violations_models",
    "incidents_models",
    "cafs_models",
    "audit_models",
]
