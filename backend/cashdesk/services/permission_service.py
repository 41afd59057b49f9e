# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Role-based permission checks.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission via a role
- Role -> permission mapping lives in cashdesk.permissions
"""

from ..extensions import db
from ..models import Role, UserRole
from ..permissions import DEFAULT_ROLE_PERMISSIONS, ELEVATED_PERMISSION


def get_user_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [name for (name,) in rows]


def get_user_permissions(user_id: int) -> set[str]:
    """Union of the permission codes of every role the user holds."""
    permission_codes: set[str] = set()
    for role_name in get_user_role_names(user_id):
        permission_codes.update(DEFAULT_ROLE_PERMISSIONS.get(role_name, []))
    return permission_codes


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def is_elevated(user_id: int) -> bool:
    """Supervisor/admin check used by shift closure and movement authorization."""
    return user_has_permission(user_id, ELEVATED_PERMISSION)
