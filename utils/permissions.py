"""Closed role set and the permission each protected operation checks."""
from __future__ import annotations

from models import USER_ROLES

ROLES = USER_ROLES

STAFF_ROLES = frozenset({"authority", "admin"})
ADMIN_ROLES = frozenset({"admin"})

PERMISSIONS = {
    "complaint.update_status": STAFF_ROLES,
    "complaint.assign": STAFF_ROLES,
    "complaint.view_all": STAFF_ROLES,
    "reports.view": STAFF_ROLES,
    "complaint.delete": ADMIN_ROLES,
    "category.manage": ADMIN_ROLES,
    "user.manage_roles": ADMIN_ROLES,
}


def role_of(user) -> str | None:
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    role = getattr(user, "role", None)
    return role if role in ROLES else None


def can(user, permission: str) -> bool:
    allowed = PERMISSIONS.get(permission)
    if allowed is None:
        raise KeyError(f"Unknown permission: {permission}")
    return role_of(user) in allowed
