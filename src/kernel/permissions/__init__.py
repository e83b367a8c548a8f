"""
Permission Core - project roles and the capability matrix.
"""

from src.kernel.permissions.role_authorizer import (
    ActionClass,
    CAPABILITY_MATRIX,
    RoleAuthorizer,
    can_mutate,
)

__all__ = [
    "ActionClass",
    "CAPABILITY_MATRIX",
    "RoleAuthorizer",
    "can_mutate",
]
