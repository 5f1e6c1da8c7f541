from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from coreops.security.grants import SUPER_ADMIN, Grant, ScopedGrant


@dataclass(frozen=True)
class AuthContext:
    """
    Verified identity of the caller.

    Populated exactly once by the authentication step and stored on
    `request.state.auth`; gates and handlers read it from there (or through
    the `get_auth_context` dependency) and nowhere else.
    """

    user_id: int
    request_id: str
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthorizationContext:
    """
    Outcome of a successful permission check.

    Attached to `request.state.authorization`; handlers read the roles and
    permissions from here and record `actor_role` on audit entries.
    """

    roles: frozenset[str]
    permissions: frozenset[str]
    matched_grant: Grant | None = None

    @property
    def actor_role(self) -> str | None:
        """Role through which the check was admitted, recorded on audit entries."""
        if isinstance(self.matched_grant, ScopedGrant):
            return self.matched_grant.role_name
        if SUPER_ADMIN in self.roles:
            return SUPER_ADMIN
        return None
