from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coreops.audit.writer import AuditEntry, write_audit_log
from coreops.db.session import transaction
from coreops.errors import BadRequest, Conflict
from coreops.models.governance import MonthCloseRecord, MonthCloseStatus
from coreops.models.security import GrantScope

logger = logging.getLogger(__name__)


def snapshot(record: MonthCloseRecord) -> dict[str, object]:
    return {"month": record.month.isoformat(), "scope": record.scope.value, "status": record.status.value}


def get_month_close(db: Session, month: date, scope: GrantScope = GrantScope.COMPANY) -> MonthCloseRecord | None:
    return db.execute(
        select(MonthCloseRecord).where(MonthCloseRecord.month == month, MonthCloseRecord.scope == scope)
    ).scalar_one_or_none()


def list_month_closes(db: Session, offset: int, limit: int) -> tuple[list[MonthCloseRecord], int]:
    rows = db.scalars(
        select(MonthCloseRecord)
        .order_by(MonthCloseRecord.month.desc(), MonthCloseRecord.scope)
        .offset(offset)
        .limit(limit)
    ).all()
    total = db.execute(select(func.count()).select_from(MonthCloseRecord)).scalar_one()
    return list(rows), total


def set_month_close_status(
    db: Session,
    *,
    month: date,
    status: MonthCloseStatus,
    actor_id: int,
    request_id: str,
    reason: str,
    actor_role: str | None = None,
    scope: GrantScope = GrantScope.COMPANY,
) -> MonthCloseRecord:
    """
    Close or reopen a month and record it in the audit log, in one transaction.

    Setting the status a month already has is a Conflict. A month without a
    record counts as OPEN.
    """

    reason = (reason or "").strip()
    if not reason:
        raise BadRequest("Reason is required")

    now = datetime.utcnow()
    with transaction(db):
        record = get_month_close(db, month, scope)
        before = snapshot(record) if record is not None else None
        current = record.status if record is not None else MonthCloseStatus.OPEN

        if current is status:
            raise Conflict(f"Month is already {status.value}")

        if record is None:
            record = MonthCloseRecord(month=month, scope=scope, status=status)
            db.add(record)

        record.status = status
        record.reason = reason
        if status is MonthCloseStatus.CLOSED:
            record.closed_by = actor_id
            record.closed_at = now
        else:
            record.opened_by = actor_id
            record.opened_at = now
        db.flush()

        write_audit_log(
            db,
            AuditEntry(
                request_id=request_id,
                entity_type="MONTH_CLOSE",
                entity_id=record.id,
                action="CLOSE" if status is MonthCloseStatus.CLOSED else "OPEN",
                severity="HIGH",
                scope=scope.value,
                before_data=before,
                after_data=snapshot(record),
                actor_id=actor_id,
                actor_role=actor_role,
                reason=reason,
            ),
        )

    logger.info("Month %s %s by user_id=%s", month.isoformat(), status.value, actor_id)
    return record
