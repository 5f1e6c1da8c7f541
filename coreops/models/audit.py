from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from coreops.db.base import Base


class AuditLogEntry(Base):
    """
    One row per state-changing action.

    Append-only: rows are created inside the transaction of the mutation they
    document and are never updated or deleted (see the mapper listeners below).
    """

    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id: Mapped[str] = mapped_column(String(60), nullable=False, index=True)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, default="MEDIUM")

    scope: Mapped[str | None] = mapped_column(String(20), nullable=True)
    division_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    before_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    actor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    actor_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLogEntry, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise AuditLogImmutableError(f"audit_log rows are append-only (id={target.id})")


@event.listens_for(AuditLogEntry, "before_delete")
def _refuse_delete(mapper, connection, target) -> None:
    raise AuditLogImmutableError(f"audit_log rows are append-only (id={target.id})")
