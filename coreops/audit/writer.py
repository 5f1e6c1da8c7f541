"""
Audit writer.

``write_audit_log(db, entry)`` appends one ``AuditLogEntry`` inside the
transaction the caller already has open on ``db``. It never begins or commits
a transaction itself: the business mutation and its audit record commit or
roll back together. A failed audit write raises, so the caller's
``transaction()`` block rolls the business mutation back as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from coreops.audit.scrub import scrub_audit_data
from coreops.errors import BadRequest, Internal
from coreops.models.audit import AuditLogEntry

logger = logging.getLogger(__name__)

SEVERITIES = frozenset({"LOW", "MEDIUM", "HIGH", "CRITICAL"})

# (entity_type, action) pairs that must carry a human reason.
SENSITIVE_ACTIONS = frozenset(
    {
        ("MONTH_CLOSE", "CLOSE"),
        ("MONTH_CLOSE", "OPEN"),
        ("ADMIN_USER", "CREATE"),
        ("AUDIT_LOG", "EXPORT"),
    }
)


@dataclass(frozen=True)
class AuditEntry:
    request_id: str
    entity_type: str
    action: str
    actor_id: int
    entity_id: str | int | None = None
    severity: str = "MEDIUM"
    scope: str | None = None
    division_id: int | None = None
    before_data: Any = None
    after_data: Any = None
    meta: Any = None
    actor_role: str | None = None
    reason: str | None = None


def requires_reason(entity_type: str, action: str) -> bool:
    return (entity_type.upper(), action.upper()) in SENSITIVE_ACTIONS


def validate_entry(entry: AuditEntry) -> None:
    if not entry.request_id:
        raise BadRequest("Audit entry requires a request id")
    if not entry.entity_type or not entry.action:
        raise BadRequest("Audit entry requires entity type and action")
    if entry.actor_id is None:
        raise BadRequest("Audit entry requires an actor")
    if entry.severity.upper() not in SEVERITIES:
        raise BadRequest(f"Invalid audit severity {entry.severity!r}")
    if requires_reason(entry.entity_type, entry.action) and not (entry.reason or "").strip():
        raise BadRequest("Reason is required")


def write_audit_log(db: Session, entry: AuditEntry) -> str:
    """Append `entry` within the open transaction on `db`; return the new row id."""

    if not db.in_transaction():
        raise RuntimeError("write_audit_log must run inside the caller's transaction")

    validate_entry(entry)

    row = AuditLogEntry(
        request_id=entry.request_id,
        entity_type=entry.entity_type.upper(),
        entity_id=None if entry.entity_id is None else str(entry.entity_id),
        action=entry.action.upper(),
        severity=entry.severity.upper(),
        scope=entry.scope,
        division_id=entry.division_id,
        before_data=scrub_audit_data(entry.entity_type.upper(), entry.before_data),
        after_data=scrub_audit_data(entry.entity_type.upper(), entry.after_data),
        meta=scrub_audit_data(entry.entity_type.upper(), entry.meta),
        actor_id=entry.actor_id,
        actor_role=entry.actor_role,
        reason=(entry.reason or "").strip() or None,
    )

    try:
        db.add(row)
        db.flush()
    except StaleDataError:
        # A pending business update lost its version check; that is a conflict, not an audit failure.
        raise
    except SQLAlchemyError as exc:
        logger.error(
            "Audit write failed entity_type=%s action=%s request_id=%s",
            row.entity_type,
            row.action,
            row.request_id,
        )
        raise Internal("Audit logging failed") from exc

    logger.debug("Audit entry %s entity_type=%s action=%s", row.id, row.entity_type, row.action)
    return row.id
