"""
Tests for the audit writer.

The invariant under test: a business mutation and its audit record commit or
roll back together, and committed audit rows never change.
"""
from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from coreops.audit.writer import AuditEntry, requires_reason, write_audit_log
from coreops.db.session import transaction
from coreops.errors import BadRequest, Internal
from coreops.models.audit import AuditLogEntry, AuditLogImmutableError
from coreops.models.governance import Project


def _entry(**overrides) -> AuditEntry:
    values = dict(request_id="req-1", entity_type="project", action="update", actor_id=1)
    values.update(overrides)
    return AuditEntry(**values)


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_write_requires_an_open_transaction(db_session):
    db_session.commit()
    assert not db_session.in_transaction()
    with pytest.raises(RuntimeError):
        write_audit_log(db_session, _entry())


def test_entry_is_normalized_and_committed_with_the_mutation(seeded, project_ids):
    with transaction(seeded):
        project = seeded.get(Project, project_ids["N-100"])
        project.name = "North warehouse (renamed)"
        audit_id = write_audit_log(
            seeded,
            _entry(entity_id=project.id, before_data={"name": "North warehouse"}, after_data={"name": project.name}),
        )

    row = seeded.get(AuditLogEntry, audit_id)
    assert row.entity_type == "PROJECT"
    assert row.action == "UPDATE"
    assert row.entity_id == str(project_ids["N-100"])
    assert row.severity == "MEDIUM"
    assert row.after_data == {"name": "North warehouse (renamed)"}
    assert row.created_at is not None


def test_failed_audit_write_rolls_back_the_mutation(seeded, project_ids):
    # CLOSE on MONTH_CLOSE is a sensitive action: no reason, no audit entry.
    with pytest.raises(BadRequest):
        with transaction(seeded):
            project = seeded.get(Project, project_ids["N-100"])
            project.name = "should not stick"
            seeded.flush()
            write_audit_log(seeded, _entry(entity_type="MONTH_CLOSE", action="CLOSE"))

    seeded.expire_all()
    assert seeded.get(Project, project_ids["N-100"]).name == "North warehouse"
    assert _count(seeded, AuditLogEntry) == 0


def test_storage_failure_becomes_internal_and_rolls_back(seeded, project_ids, monkeypatch):
    real_flush = seeded.flush

    def failing_flush(*args, **kwargs):
        if any(isinstance(obj, AuditLogEntry) for obj in seeded.new):
            raise OperationalError("INSERT INTO audit_log", {}, Exception("disk full"))
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(seeded, "flush", failing_flush)

    with pytest.raises(Internal) as exc_info:
        with transaction(seeded):
            project = seeded.get(Project, project_ids["S-200"])
            project.name = "should not stick"
            real_flush()
            write_audit_log(seeded, _entry(entity_id=project.id))
    assert exc_info.value.message == "Audit logging failed"

    monkeypatch.undo()
    seeded.expire_all()
    assert seeded.get(Project, project_ids["S-200"]).name == "South depot"
    assert _count(seeded, AuditLogEntry) == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"request_id": ""},
        {"entity_type": ""},
        {"action": ""},
        {"severity": "URGENT"},
        {"entity_type": "AUDIT_LOG", "action": "EXPORT", "reason": "   "},
    ],
)
def test_invalid_entries_are_rejected(db_session, overrides):
    with pytest.raises(BadRequest):
        with transaction(db_session):
            write_audit_log(db_session, _entry(**overrides))


def test_requires_reason_is_case_insensitive():
    assert requires_reason("month_close", "close")
    assert requires_reason("AUDIT_LOG", "EXPORT")
    assert not requires_reason("PROJECT", "UPDATE")


def test_audit_rows_cannot_be_updated_or_deleted(db_session):
    with transaction(db_session):
        audit_id = write_audit_log(db_session, _entry())

    row = db_session.get(AuditLogEntry, audit_id)
    row.action = "TAMPER"
    with pytest.raises(AuditLogImmutableError):
        db_session.flush()
    db_session.rollback()

    row = db_session.get(AuditLogEntry, audit_id)
    db_session.delete(row)
    with pytest.raises(AuditLogImmutableError):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(AuditLogEntry, audit_id).action == "UPDATE"


def test_payloads_are_scrubbed(db_session):
    with transaction(db_session):
        audit_id = write_audit_log(
            db_session,
            _entry(
                entity_type="SYSTEM_CONFIG",
                after_data={"key": "SMTP_PASSWORD", "value": "hunter2", "description": "mail"},
                meta={"bankAccount": "12345678", "documentUrl": "https://files/doc.pdf", "salary": 10},
            ),
        )

    row = db_session.get(AuditLogEntry, audit_id)
    assert row.after_data["value"] == "[REDACTED]"
    assert row.after_data["key"] == "SMTP_PASSWORD"
    assert row.meta == {"bankAccount": "****5678", "documentUrl": "[MASKED]", "salary": "[MASKED]"}
