from __future__ import annotations

from typing import Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coreops.db.session import get_db
from coreops.models.governance import MonthCloseRecord
from coreops.models.security import GrantScope
from coreops.schemas.audit import Page
from coreops.schemas.governance import MonthCloseOut, MonthCloseStatusIn
from coreops.security.context import AuthContext, AuthorizationContext
from coreops.security.decorators import require_any_permission, require_permission
from coreops.security.dependencies import get_auth_context, get_authorization
from coreops.security.month_close import RouteGroup, parse_month
from coreops.services.month_close import get_month_close, list_month_closes, set_month_close_status

# Tagged month_close: these routes stay writable while a month is closed, so it can be reopened.
# Permissions are declared on the handlers instead of in security_config.yaml.
router = APIRouter(prefix="/api/v1/governance/month-close", tags=[RouteGroup.MONTH_CLOSE.value])


@router.get("", response_model=Union[Page[MonthCloseOut], MonthCloseOut])
@require_any_permission(["GOV_MONTH_CLOSE_READ", "GOV_MONTH_CLOSE_WRITE"])
def list_or_get(
    month: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=200, alias="pageSize"),
    db: Session = Depends(get_db),
) -> Page[MonthCloseOut] | MonthCloseOut:
    if month is not None:
        target = parse_month(month)
        record = get_month_close(db, target)
        if record is None:
            return MonthCloseOut(month=target, scope=GrantScope.COMPANY.value, status="OPEN")
        return MonthCloseOut.model_validate(_as_out(record))

    rows, total = list_month_closes(db, offset=(page - 1) * page_size, limit=page_size)
    return Page[MonthCloseOut](
        items=[MonthCloseOut.model_validate(_as_out(r)) for r in rows],
        page=page,
        page_size=page_size,
        total=total,
    )


def _as_out(record: MonthCloseRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "month": record.month,
        "scope": record.scope.value,
        "status": record.status,
        "closed_by": record.closed_by,
        "closed_at": record.closed_at,
        "reason": record.reason,
        "opened_by": record.opened_by,
        "opened_at": record.opened_at,
    }


@router.post("/status", response_model=MonthCloseOut)
@require_permission("GOV_MONTH_CLOSE_WRITE")
def set_status(
    body: MonthCloseStatusIn,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    authz: AuthorizationContext = Depends(get_authorization),
) -> MonthCloseOut:
    record = set_month_close_status(
        db,
        month=parse_month(body.month),
        status=body.status,
        actor_id=auth.user_id,
        request_id=auth.request_id,
        reason=body.reason,
        actor_role=authz.actor_role,
    )
    return MonthCloseOut.model_validate(_as_out(record))
