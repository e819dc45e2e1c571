"""
Caller Identity

The authentication collaborator is external; this module only models the
identity it hands to the engine and the role checks the engine performs.
"""

import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from gradebook.common.errors import NotAuthenticated, NotAuthorized


class UserRole(enum.Enum):
    """Roles the engine distinguishes."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    GRADER = "grader"
    STUDENT = "student"


GRADING_ROLES = frozenset({UserRole.ADMIN, UserRole.INSTRUCTOR, UserRole.GRADER})
AUTHORING_ROLES = frozenset({UserRole.ADMIN, UserRole.INSTRUCTOR})


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller.

    Attributes:
        user_id: Stable user identity supplied by the auth collaborator
        roles: Roles granted to the caller
    """

    user_id: str
    roles: FrozenSet[UserRole] = field(default_factory=lambda: frozenset({UserRole.STUDENT}))

    @classmethod
    def from_claims(cls, user_id: Optional[str], roles: Iterable[str] = ()) -> 'Principal':
        """Build a principal from raw identity claims, ignoring unknown roles."""
        if not user_id:
            raise NotAuthenticated()
        parsed = set()
        for role in roles:
            try:
                parsed.add(UserRole(role.strip().lower()))
            except ValueError:
                continue
        return cls(user_id=user_id, roles=frozenset(parsed or {UserRole.STUDENT}))

    def has_any_role(self, roles: Iterable[UserRole]) -> bool:
        return bool(self.roles & frozenset(roles))

    @property
    def can_grade(self) -> bool:
        return self.has_any_role(GRADING_ROLES)

    @property
    def can_author(self) -> bool:
        return self.has_any_role(AUTHORING_ROLES)

    def require_grader(self, resource: str) -> None:
        if not self.can_grade:
            raise NotAuthorized(f"User {self.user_id} may not grade {resource}", resource=resource, action="grade")

    def require_author(self, resource: str) -> None:
        if not self.can_author:
            raise NotAuthorized(f"User {self.user_id} may not edit {resource}", resource=resource, action="edit")

    def require_owner(self, owner_id: str, resource: str, action: str) -> None:
        """Only the owning learner may act on their own attempt."""
        if owner_id != self.user_id:
            raise NotAuthorized(
                f"User {self.user_id} may not {action} {resource} owned by another learner",
                resource=resource,
                action=action
            )
