"""
Roles and the feature permission table.

Authorization is allow-list membership: a role is granted a feature (or a
route) only when it appears in that feature's list. No ordering between
roles is implied or inferred.
"""
from __future__ import annotations

import enum
from typing import Dict, FrozenSet, List


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    AGENT = "AGENT"
    USER = "USER"

    @classmethod
    def parse(cls, value) -> "Role | None":
        """Return the Role for value, or None when it is not a known role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


PERMISSIONS: Dict[str, FrozenSet[Role]] = {
    "VIEW_DASHBOARD": frozenset({Role.USER, Role.AGENT, Role.MANAGER, Role.ADMIN}),
    "MANAGE_LEADS": frozenset({Role.AGENT, Role.MANAGER, Role.ADMIN}),
    "VIEW_REPORTS": frozenset({Role.AGENT, Role.MANAGER, Role.ADMIN}),
    "MANAGE_TEAMS": frozenset({Role.MANAGER, Role.ADMIN}),
    "MANAGE_COMPANY": frozenset({Role.ADMIN}),
    "MANAGE_USERS": frozenset({Role.ADMIN}),
    "ACCESS_SETTINGS": frozenset({Role.ADMIN}),
}


def is_allowed(role, allowed_roles) -> bool:
    """True when role is a member of allowed_roles."""
    parsed = Role.parse(role)
    if parsed is None:
        return False
    return parsed in {Role.parse(r) for r in allowed_roles}


def permissions_for(role) -> List[str]:
    """Feature names whose allow-list contains role, in table order."""
    return [name for name, roles in PERMISSIONS.items() if is_allowed(role, roles)]
