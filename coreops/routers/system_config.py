from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Path
from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.audit.writer import AuditEntry, write_audit_log
from coreops.db.session import get_db, transaction
from coreops.models.governance import SystemConfig
from coreops.models.security import GrantScope
from coreops.schemas.governance import SystemConfigIn, SystemConfigOut
from coreops.security.context import AuthContext, AuthorizationContext
from coreops.security.dependencies import get_auth_context, get_authorization
from coreops.security.month_close import RouteGroup

router = APIRouter(prefix="/api/v1/governance/system-config", tags=[RouteGroup.SYSTEM_CONFIG.value])


def _snapshot(row: SystemConfig) -> dict[str, object]:
    return {"key": row.key, "value": row.value, "description": row.description}


@router.get("", response_model=list[SystemConfigOut])
def list_config(db: Session = Depends(get_db)) -> list[SystemConfig]:
    return list(db.scalars(select(SystemConfig).order_by(SystemConfig.key)).all())


@router.put("/{key}", response_model=SystemConfigOut)
def put_config(
    body: SystemConfigIn,
    key: str = Path(min_length=1, max_length=80, pattern=r"^[A-Za-z0-9_.-]+$"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    authz: AuthorizationContext = Depends(get_authorization),
) -> SystemConfig:
    key = key.upper()
    with transaction(db):
        row = db.get(SystemConfig, key)
        before = _snapshot(row) if row is not None else None
        if row is None:
            row = SystemConfig(key=key)
            db.add(row)

        row.value = body.value
        if body.description is not None:
            row.description = body.description
        row.updated_at = datetime.utcnow()
        db.flush()

        write_audit_log(
            db,
            AuditEntry(
                request_id=auth.request_id,
                entity_type="SYSTEM_CONFIG",
                entity_id=key,
                action="CREATE" if before is None else "UPDATE",
                severity="HIGH",
                scope=GrantScope.COMPANY.value,
                before_data=before,
                after_data=_snapshot(row),
                actor_id=auth.user_id,
                actor_role=authz.actor_role,
            ),
        )
    return row
