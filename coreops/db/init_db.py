from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from coreops import models  # noqa: F401  (register mappers on Base.metadata)
from coreops.db.base import Base
from coreops.models.governance import Project, SystemConfig
from coreops.models.security import Division, GrantScope, Permission, Role, User, UserRoleGrant
from coreops.services.system_config import MONTH_CLOSE_ENABLED

PERMISSIONS: dict[str, str] = {
    "GOV_PROJECT_READ": "Read projects",
    "GOV_PROJECT_WRITE": "Create and edit projects",
    "GOV_MONTH_CLOSE_READ": "Read month close status",
    "GOV_MONTH_CLOSE_WRITE": "Close and reopen months",
    "GOV_SYSTEM_CONFIG_READ": "Read system configuration",
    "GOV_SYSTEM_CONFIG_WRITE": "Change system configuration",
    "GOV_AUDIT_READ": "Read the audit log",
    "GOV_AUDIT_EXPORT": "Export the audit log",
    "SYSTEM_FULL_ACCESS": "Every permission in every scope",
}

ROLES: dict[str, list[str]] = {
    "SUPER_ADMIN": [],
    "ADMIN": ["SYSTEM_FULL_ACCESS"],
    "FINANCE_CONTROLLER": ["GOV_MONTH_CLOSE_READ", "GOV_MONTH_CLOSE_WRITE", "GOV_PROJECT_READ"],
    "DIVISION_MANAGER": ["GOV_PROJECT_READ", "GOV_PROJECT_WRITE"],
    "AUDITOR": ["GOV_AUDIT_READ", "GOV_AUDIT_EXPORT", "GOV_SYSTEM_CONFIG_READ", "GOV_MONTH_CLOSE_READ"],
    "EMPLOYEE": [],
}


def init_db(engine: Engine) -> None:
    """
    Create tables + seed demo data.

    Small and deterministic so the gates can be tried without extra setup.
    Seeding is skipped once any division exists.
    """

    Base.metadata.create_all(bind=engine)

    with Session(engine) as db:
        if _has_seed_data(db):
            return
        seed(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Division.id).limit(1)).first() is not None


def seed(db: Session) -> None:
    north = Division(name="North", code="NORTH", description="Northern division")
    south = Division(name="South", code="SOUTH", description="Southern division")
    db.add_all([north, south])
    db.flush()

    permissions = {code: Permission(code=code, description=desc) for code, desc in PERMISSIONS.items()}
    db.add_all(permissions.values())

    roles: dict[str, Role] = {}
    for name, codes in ROLES.items():
        role = Role(name=name, description=name.replace("_", " ").title())
        role.permissions.extend(permissions[c] for c in codes)
        roles[name] = role
    db.add_all(roles.values())
    db.flush()

    def user(username: str, *grants: tuple[str, GrantScope, Division | None]) -> User:
        u = User(username=username, email=f"{username}@example.com", is_active=True)
        for role_name, scope, division in grants:
            u.role_grants.append(
                UserRoleGrant(role=roles[role_name], scope=scope, division_id=division.id if division else None)
            )
        return u

    db.add_all(
        [
            user("sam_super", ("SUPER_ADMIN", GrantScope.COMPANY, None)),
            user("ada_admin", ("ADMIN", GrantScope.COMPANY, None)),
            user("fin_controller", ("FINANCE_CONTROLLER", GrantScope.COMPANY, None)),
            user("nora_north", ("DIVISION_MANAGER", GrantScope.DIVISION, north)),
            user("sid_south", ("DIVISION_MANAGER", GrantScope.DIVISION, south)),
            user("aud_auditor", ("AUDITOR", GrantScope.COMPANY, None)),
            user("eve_employee", ("EMPLOYEE", GrantScope.COMPANY, None)),
        ]
    )

    db.add_all(
        [
            Project(code="N-100", name="North warehouse", division_id=north.id),
            Project(code="S-200", name="South depot", division_id=south.id),
        ]
    )
    db.add(SystemConfig(key=MONTH_CLOSE_ENABLED, value="true", description="Enforce month close on mutations"))

    db.commit()
