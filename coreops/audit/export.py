"""
Audit trail reads and exports.

Exporting the audit trail is itself an audited action: the CSV is written, the
``AUDIT_LOG / EXPORT`` entry is appended, and only when both succeed does the
caller get a capability token for downloading the file.
"""

from __future__ import annotations

import csv
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from coreops.audit.writer import AuditEntry, write_audit_log
from coreops.db.session import transaction
from coreops.models.audit import AuditLogEntry
from coreops.security.capability import CapabilityTokenService

logger = logging.getLogger(__name__)

# Upper bound on rows per export file.
MAX_EXPORT_ROWS = 50_000

CSV_COLUMNS = (
    "id",
    "created_at",
    "request_id",
    "entity_type",
    "entity_id",
    "action",
    "severity",
    "scope",
    "division_id",
    "actor_id",
    "actor_role",
    "reason",
)

_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_-]")


@dataclass(frozen=True)
class AuditFilters:
    entity_type: str | None = None
    entity_id: str | None = None
    action: str | None = None
    actor_id: int | None = None
    request_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class ExportResult:
    file_name: str
    rel_path: str
    row_count: int
    size_bytes: int
    token: str
    expires_at_ms: int
    audit_id: str
    filters: dict[str, Any] = field(default_factory=dict)


def _filtered(stmt: Select, filters: AuditFilters) -> Select:
    if filters.entity_type:
        stmt = stmt.where(AuditLogEntry.entity_type == filters.entity_type.upper())
    if filters.entity_id:
        stmt = stmt.where(AuditLogEntry.entity_id == filters.entity_id)
    if filters.action:
        stmt = stmt.where(AuditLogEntry.action == filters.action.upper())
    if filters.actor_id is not None:
        stmt = stmt.where(AuditLogEntry.actor_id == filters.actor_id)
    if filters.request_id:
        stmt = stmt.where(AuditLogEntry.request_id == filters.request_id)
    if filters.created_from is not None:
        stmt = stmt.where(AuditLogEntry.created_at >= filters.created_from)
    if filters.created_to is not None:
        stmt = stmt.where(AuditLogEntry.created_at <= filters.created_to)
    return stmt


def list_audit_logs(db: Session, filters: AuditFilters, offset: int, limit: int) -> tuple[list[AuditLogEntry], int]:
    rows = db.scalars(
        _filtered(select(AuditLogEntry), filters)
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id)
        .offset(offset)
        .limit(limit)
    ).all()
    total = db.execute(_filtered(select(func.count()).select_from(AuditLogEntry), filters)).scalar_one()
    return list(rows), total


def _csv_value(row: AuditLogEntry, column: str) -> object:
    value = getattr(row, column)
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _write_csv(path: Path, rows: list[AuditLogEntry]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(CSV_COLUMNS)
        for row in rows:
            writer.writerow([_csv_value(row, col) for col in CSV_COLUMNS])
    return path.stat().st_size


def export_audit_logs(
    db: Session,
    *,
    filters: AuditFilters,
    reason: str,
    actor_id: int,
    actor_role: str | None,
    request_id: str,
    storage_root: Path,
    tokens: CapabilityTokenService,
    ttl_seconds: int,
) -> ExportResult:
    stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S")
    base = _UNSAFE_NAME.sub("_", f"audit_log_{stamp}")[:80]
    file_name = f"{base}_{uuid.uuid4()}.csv"
    target = storage_root / file_name

    try:
        with transaction(db):
            rows = db.scalars(
                _filtered(select(AuditLogEntry), filters)
                .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id)
                .limit(MAX_EXPORT_ROWS)
            ).all()
            size_bytes = _write_csv(target, list(rows))
            audit_id = write_audit_log(
                db,
                AuditEntry(
                    request_id=request_id,
                    entity_type="AUDIT_LOG",
                    action="EXPORT",
                    severity="HIGH",
                    scope="COMPANY",
                    meta={"filters": filters.as_dict(), "rowCount": len(rows), "fileName": file_name},
                    actor_id=actor_id,
                    actor_role=actor_role,
                    reason=reason,
                ),
            )
    except Exception:
        # No audit record, no export file.
        target.unlink(missing_ok=True)
        raise

    expires_at_ms = int(time.time() * 1000) + ttl_seconds * 1000
    token = tokens.issue(file_name, file_name, expires_at_ms, actor_id)
    logger.info("Audit export %s rows=%d by user_id=%s", file_name, len(rows), actor_id)

    return ExportResult(
        file_name=file_name,
        rel_path=file_name,
        row_count=len(rows),
        size_bytes=size_bytes,
        token=token,
        expires_at_ms=expires_at_ms,
        audit_id=audit_id,
        filters=filters.as_dict(),
    )
