# Overview: Permission checks for back-office users.

"""
Customers hold no back-office permissions. Staff and admins resolve their
permissions from access_level (owner, manager, staff); a back-office user
with no access level gets the staff set. Fail closed otherwise.
"""

from ..errors import Forbidden
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from ..permissions import ACCESS_LEVEL_PERMISSIONS, ACCESS_STAFF


def get_user_permissions(user: User) -> frozenset[str]:
    if user is None or not user.is_active or user.role not in (ROLE_ADMIN, ROLE_STAFF):
        return frozenset()
    return ACCESS_LEVEL_PERMISSIONS.get(user.access_level or ACCESS_STAFF, frozenset())


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(user: User, permission_code: str) -> None:
    if not user_has_permission(user, permission_code):
        raise Forbidden("Permission denied", details={"required_permission": permission_code})
