"""
Role definitions for ledger access.

Roles travel in the access token; there is no role table in this service.
"""

from enum import Enum
from typing import FrozenSet


class Role(str, Enum):
    ADMIN = "ADMIN"  # Organization administrator
    TREASURER = "TREASURER"  # Books entries, locks periods, reconciles banks
    ACCOUNTANT = "ACCOUNTANT"  # Read access to the books
    VIEWER = "VIEWER"


# Roles allowed to change ledger state
WRITE_ROLES: FrozenSet[str] = frozenset({Role.ADMIN.value, Role.TREASURER.value})

READ_ROLES: FrozenSet[str] = frozenset(role.value for role in Role)
