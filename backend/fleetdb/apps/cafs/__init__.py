"""
Corrective Action Forms app.

CAF generation from incident violations, numbering, the status workflow,
signatures, export and the incident completion cascade.
"""

from . import models  # noqa: F401
