"""
Role authorization policy
- ADMIN passes every check
- TEACHER passes every check except ADMIN-only ones
- SALES and STUDENT only pass their own checks
"""
from typing import Iterable

from core.models import UserRole

# explicit role sets used by route handlers
STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.TEACHER})
CRM_ROLES = frozenset({UserRole.ADMIN, UserRole.TEACHER, UserRole.SALES})


def has_role(caller_role, required_role) -> bool:
    if not caller_role:
        return False
    caller_role = UserRole(caller_role)
    required_role = UserRole(required_role)

    if caller_role == UserRole.ADMIN:
        return True
    if caller_role == UserRole.TEACHER and required_role != UserRole.ADMIN:
        return True
    return caller_role == required_role


def is_one_of(caller_role, roles: Iterable[UserRole]) -> bool:
    """Plain membership test, no hierarchy."""
    if not caller_role:
        return False
    return UserRole(caller_role) in set(roles)
