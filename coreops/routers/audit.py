from __future__ import annotations

from datetime import datetime
from pathlib import Path
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from coreops.audit.export import AuditFilters, export_audit_logs, list_audit_logs
from coreops.db.session import get_db
from coreops.errors import NotFound
from coreops.schemas.audit import AuditExportIn, AuditExportOut, AuditLogOut, Page
from coreops.security.capability import CapabilityTokenService, resolve_within
from coreops.security.context import AuthContext, AuthorizationContext
from coreops.security.dependencies import (
    get_auth_context,
    get_app_settings,
    get_authorization,
    get_capability_tokens,
    get_export_root,
)
from coreops.security.month_close import RouteGroup
from coreops.settings import Settings

router = APIRouter(prefix="/api/v1/governance/audit", tags=[RouteGroup.AUDIT.value])

DOWNLOAD_PATH = "/api/v1/governance/audit/exports/download"


@router.get("", response_model=Page[AuditLogOut])
def list_entries(
    entity_type: str | None = Query(default=None, alias="entityType"),
    entity_id: str | None = Query(default=None, alias="entityId"),
    action: str | None = Query(default=None),
    actor_id: int | None = Query(default=None, alias="actorId"),
    request_id: str | None = Query(default=None, alias="requestId"),
    created_from: datetime | None = Query(default=None, alias="from"),
    created_to: datetime | None = Query(default=None, alias="to"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200, alias="pageSize"),
    db: Session = Depends(get_db),
) -> Page[AuditLogOut]:
    filters = AuditFilters(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        request_id=request_id,
        created_from=created_from,
        created_to=created_to,
    )
    rows, total = list_audit_logs(db, filters, offset=(page - 1) * page_size, limit=page_size)
    return Page[AuditLogOut](
        items=[AuditLogOut.model_validate(r) for r in rows],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.post("/exports", response_model=AuditExportOut, status_code=status.HTTP_201_CREATED)
def create_export(
    body: AuditExportIn,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    authz: AuthorizationContext = Depends(get_authorization),
    tokens: CapabilityTokenService = Depends(get_capability_tokens),
    export_root: Path = Depends(get_export_root),
    settings: Settings = Depends(get_app_settings),
) -> AuditExportOut:
    result = export_audit_logs(
        db,
        filters=AuditFilters(**body.filters.model_dump()),
        reason=body.reason,
        actor_id=auth.user_id,
        actor_role=authz.actor_role,
        request_id=auth.request_id,
        storage_root=export_root,
        tokens=tokens,
        ttl_seconds=settings.export_token_ttl_seconds,
    )
    return AuditExportOut(
        file_name=result.file_name,
        row_count=result.row_count,
        size_bytes=result.size_bytes,
        token=result.token,
        expires_at=result.expires_at_ms,
        download_url=f"{DOWNLOAD_PATH}?token={quote(result.token)}",
    )


@router.get("/exports/download")
def download_export(
    token: str = Query(min_length=1),
    auth: AuthContext = Depends(get_auth_context),
    tokens: CapabilityTokenService = Depends(get_capability_tokens),
    export_root: Path = Depends(get_export_root),
) -> FileResponse:
    """No permission rule: the capability token is the authorization, bound to the caller who requested it."""

    claims = tokens.verify(token, auth.user_id)
    path = resolve_within(export_root, claims.rel_path)
    if not path.is_file():
        raise NotFound("Export file not found")
    return FileResponse(path, media_type="text/csv", filename=claims.file_name)
