from __future__ import annotations

from dataclasses import dataclass

ROLE_STUDENT = "student"
ROLE_INSTRUCTOR = "instructor"
ROLE_ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class Principal:
    """The caller behind a verified bearer token.

    ``user_id`` is the token subject; accounts live in the identity
    service, so it is an opaque string here.  Tokens without a roles
    claim are treated as students.
    """

    user_id: str
    roles: frozenset[str]

    def has_any_role(self, roles: set[str]) -> bool:
        return not self.roles.isdisjoint(roles)

    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles

    def can_manage(self, instructor_id: str) -> bool:
        """Course authors and admins may edit a course and its lectures."""
        return self.user_id == instructor_id or self.is_admin()
