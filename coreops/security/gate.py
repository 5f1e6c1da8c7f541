"""
Permission gate.

Admission rule, for a requirement (one code, or any of a list) and a target
division resolved per request:

1. no identity                               -> Unauthorized
2. universal grant (full access/super admin) -> admit, scope not consulted
3. first grant with a required code whose scope is COMPANY, or DIVISION with
   the same division id as the target        -> admit
4. otherwise                                 -> Forbidden

When several grants qualify the first one in resolution order wins; no
precedence between them is defined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from coreops.errors import Forbidden, Unauthorized
from coreops.security.context import AuthContext, AuthorizationContext
from coreops.security.grants import Grant, Grants, resolve_grants
from coreops.security.scope import ScopeRequest, ScopeResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionRequirement:
    """
    `codes` holds one code for the single-permission variant and the whole
    list for the any-of variant; both admit on any one of them.
    """

    codes: frozenset[str]
    any_of: bool = False
    scope: str | None = None

    @classmethod
    def single(cls, code: str, scope: str | None = None) -> PermissionRequirement:
        return cls(codes=frozenset([code]), any_of=False, scope=scope)

    @classmethod
    def one_of(cls, codes: list[str] | tuple[str, ...] | frozenset[str], scope: str | None = None) -> PermissionRequirement:
        if not codes:
            raise ValueError("any-of permission requirement needs at least one code")
        return cls(codes=frozenset(codes), any_of=True, scope=scope)

    def describe(self) -> dict[str, object]:
        if self.any_of:
            return {"requiredPermissions": sorted(self.codes)}
        return {"requiredPermission": next(iter(self.codes))}


def evaluate(grants: Grants, required_codes: frozenset[str], division_id: str | None) -> Grant | None:
    """Return the first grant admitting `required_codes` in `division_id`, or None."""

    for grant in grants.grants:
        if grant.admits(required_codes, division_id):
            return grant
    return None


def check_permission(
    db: Session,
    auth: AuthContext | None,
    requirement: PermissionRequirement,
    scope_request: Callable[[], ScopeRequest] | None = None,
    resolver: ScopeResolver | None = None,
) -> AuthorizationContext:
    """
    Run the gate for one request.

    `scope_request` is a thunk so the request body and path are only looked at
    when a scope resolver actually has to run.
    """

    if auth is None:
        raise Unauthorized()

    grants = resolve_grants(db, auth.user_id)

    division_id: str | None = None
    if not grants.is_universal and resolver is not None and scope_request is not None:
        division_id = resolver(scope_request())

    grant = evaluate(grants, requirement.codes, division_id)
    if grant is None:
        logger.info(
            "Permission denied user_id=%s required=%s division_id=%s",
            auth.user_id,
            sorted(requirement.codes),
            division_id,
        )
        # Echoing the caller's permissions helps support but discloses the
        # grant set; revisit before exposing this API outside the company.
        details = requirement.describe()
        details["availablePermissions"] = sorted(grants.permissions)
        raise Forbidden(details=details)

    logger.debug(
        "Permission granted user_id=%s required=%s division_id=%s via=%s",
        auth.user_id,
        sorted(requirement.codes),
        division_id,
        grant,
    )
    return AuthorizationContext(roles=grants.roles, permissions=grants.permissions, matched_grant=grant)
