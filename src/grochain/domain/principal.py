"""Caller identity as seen by the service layer.

Authentication happens upstream; the API layer turns the gateway's headers
into a Principal and services only ask it capability questions.
"""

from __future__ import annotations

from dataclasses import dataclass

from grochain.domain.enums import APPROVER_ROLES, UserRole
from grochain.domain.exceptions import AuthorizationError


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_approve_harvests(self) -> bool:
        return self.role in APPROVER_ROLES

    def require_role(self, *roles: UserRole, action: str) -> None:
        """Raise AuthorizationError unless the caller holds one of ``roles``."""
        if self.role not in roles:
            allowed = ", ".join(sorted(r.value for r in roles))
            raise AuthorizationError(
                f"Role '{self.role.value}' may not {action} (requires one of: {allowed})"
            )
