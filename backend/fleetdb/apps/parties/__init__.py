"""
Parties app

Responsible for:
- Persons, organizations and equipment (joined-table party hierarchy)
- Master organizations and their child carriers
- Staff records with CAF signing / approval capabilities
- Role assignments used to resolve what a caller may touch

Other apps (incidents, cafs) depend on these models for anything related
to "who is allowed to do what".
"""

from . import models  # noqa: F401
