"""Tests for closing and reopening months (set_month_close_status)."""
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from coreops.errors import BadRequest, Conflict, Internal
from coreops.models.audit import AuditLogEntry
from coreops.models.governance import MonthCloseRecord, MonthCloseStatus
from coreops.services import month_close as service

MARCH = date(2026, 3, 1)


def _set(db, status, reason="period end", actor_id=1):
    return service.set_month_close_status(
        db,
        month=MARCH,
        status=status,
        actor_id=actor_id,
        request_id="req-mc",
        reason=reason,
        actor_role="FINANCE_CONTROLLER",
    )


def _audit_rows(db) -> list[AuditLogEntry]:
    return list(db.scalars(select(AuditLogEntry).where(AuditLogEntry.entity_type == "MONTH_CLOSE")).all())


def test_close_then_reopen_is_audited(seeded):
    record = _set(seeded, MonthCloseStatus.CLOSED)
    assert record.status is MonthCloseStatus.CLOSED
    assert record.closed_by == 1
    assert record.closed_at is not None

    record = _set(seeded, MonthCloseStatus.OPEN, reason="late invoice", actor_id=2)
    assert record.status is MonthCloseStatus.OPEN
    assert record.opened_by == 2

    rows = {r.action: r for r in _audit_rows(seeded)}
    assert set(rows) == {"CLOSE", "OPEN"}
    assert rows["CLOSE"].severity == "HIGH"
    assert rows["CLOSE"].reason == "period end"
    assert rows["CLOSE"].before_data is None
    assert rows["CLOSE"].after_data == {"month": "2026-03-01", "scope": "COMPANY", "status": "CLOSED"}
    assert rows["OPEN"].before_data["status"] == "CLOSED"
    assert rows["OPEN"].reason == "late invoice"
    assert rows["OPEN"].actor_role == "FINANCE_CONTROLLER"


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_reason_is_required(seeded, reason):
    with pytest.raises(BadRequest):
        _set(seeded, MonthCloseStatus.CLOSED, reason=reason)
    assert service.get_month_close(seeded, MARCH) is None


def test_setting_the_current_status_is_a_conflict(seeded):
    with pytest.raises(Conflict):
        _set(seeded, MonthCloseStatus.OPEN)

    _set(seeded, MonthCloseStatus.CLOSED)
    with pytest.raises(Conflict):
        _set(seeded, MonthCloseStatus.CLOSED)
    assert len(_audit_rows(seeded)) == 1


def test_audit_failure_leaves_month_unchanged(seeded, monkeypatch):
    def broken_writer(db, entry):
        raise Internal("Audit logging failed")

    monkeypatch.setattr(service, "write_audit_log", broken_writer)

    with pytest.raises(Internal):
        _set(seeded, MonthCloseStatus.CLOSED)

    seeded.expire_all()
    assert service.get_month_close(seeded, MARCH) is None
    assert seeded.scalars(select(MonthCloseRecord)).all() == []


def test_list_month_closes_pages(seeded):
    _set(seeded, MonthCloseStatus.CLOSED)
    rows, total = service.list_month_closes(seeded, offset=0, limit=10)
    assert total == 1
    assert rows[0].month == MARCH
