"""
Caller identity and role checks used by the gradebook engine and its API.
"""

from gradebook.common.auth.principal import (
    Principal,
    UserRole,
    GRADING_ROLES,
    AUTHORING_ROLES
)

from gradebook.common.auth.dependencies import (
    get_current_principal,
    principal_from_token
)

__all__ = [
    'Principal',
    'UserRole',
    'GRADING_ROLES',
    'AUTHORING_ROLES',
    'get_current_principal',
    'principal_from_token',
]
