"""
Grant resolution.

``resolve_grants`` loads everything a user may do in one query and returns a
``Grants`` value. It is called on every authorization check and never cached,
so revoking a role takes effect on the very next request.

The global escape hatch (``SYSTEM_FULL_ACCESS`` permission or ``SUPER_ADMIN``
role) is decided here, once, and represented as a ``UniversalGrant`` at the
front of the grant list. Gates never compare those strings themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.models.security import GrantScope, Permission, Role, UserRoleGrant, role_permissions

logger = logging.getLogger(__name__)

SYSTEM_FULL_ACCESS = "SYSTEM_FULL_ACCESS"
SUPER_ADMIN = "SUPER_ADMIN"


@dataclass(frozen=True)
class ScopedGrant:
    """One permission code held through one role, company-wide or in one division."""

    role_name: str
    scope: GrantScope
    division_id: str | None
    permission_code: str

    def admits(self, required_codes: frozenset[str], division_id: str | None) -> bool:
        if self.permission_code not in required_codes:
            return False
        if self.scope is GrantScope.COMPANY:
            return True
        if division_id is None or self.division_id is None:
            return False
        return self.division_id == str(division_id)


@dataclass(frozen=True)
class UniversalGrant:
    """Admits every requirement in every scope."""

    source: str

    def admits(self, required_codes: frozenset[str], division_id: str | None) -> bool:
        return True


Grant = Union[UniversalGrant, ScopedGrant]


@dataclass(frozen=True)
class Grants:
    roles: frozenset[str] = frozenset()
    permissions: frozenset[str] = frozenset()
    grants: tuple[Grant, ...] = field(default_factory=tuple)

    @property
    def is_universal(self) -> bool:
        return any(isinstance(g, UniversalGrant) for g in self.grants)

    @property
    def scoped(self) -> tuple[ScopedGrant, ...]:
        return tuple(g for g in self.grants if isinstance(g, ScopedGrant))


def build_grants(rows: Iterable[tuple[str, GrantScope, int | None, str | None]]) -> Grants:
    """
    Fold (role_name, scope, division_id, permission_code) rows into `Grants`.

    Rows keep their query order in the scoped list; the first matching grant
    wins at check time.
    """

    roles: set[str] = set()
    permissions: set[str] = set()
    scoped: list[ScopedGrant] = []

    for role_name, scope, division_id, permission_code in rows:
        roles.add(role_name)
        if permission_code is None:
            # Role without permissions still counts as a role.
            continue
        scope = GrantScope(scope)
        permissions.add(permission_code)
        scoped.append(
            ScopedGrant(
                role_name=role_name,
                scope=scope,
                division_id=None if scope is GrantScope.COMPANY or division_id is None else str(division_id),
                permission_code=permission_code,
            )
        )

    grants: list[Grant] = []
    if SYSTEM_FULL_ACCESS in permissions:
        grants.append(UniversalGrant(source=f"permission:{SYSTEM_FULL_ACCESS}"))
    elif SUPER_ADMIN in roles:
        grants.append(UniversalGrant(source=f"role:{SUPER_ADMIN}"))
    grants.extend(scoped)

    return Grants(roles=frozenset(roles), permissions=frozenset(permissions), grants=tuple(grants))


def resolve_grants(db: Session, user_id: int) -> Grants:
    """Load a user's roles, permissions and scoped grants. Empty for a user without assignments."""

    stmt = (
        select(Role.name, UserRoleGrant.scope, UserRoleGrant.division_id, Permission.code)
        .select_from(UserRoleGrant)
        .join(Role, Role.id == UserRoleGrant.role_id)
        # Outer join on purpose: a role without permissions (SUPER_ADMIN) still counts.
        .outerjoin(role_permissions, role_permissions.c.role_id == Role.id)
        .outerjoin(Permission, Permission.id == role_permissions.c.permission_id)
        .where(UserRoleGrant.user_id == user_id)
        .order_by(UserRoleGrant.id, Permission.id)
    )
    grants = build_grants(db.execute(stmt).all())
    logger.debug(
        "Resolved grants user_id=%s roles=%s permissions=%d universal=%s",
        user_id,
        sorted(grants.roles),
        len(grants.permissions),
        grants.is_universal,
    )
    return grants
