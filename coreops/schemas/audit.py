from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import Field

from coreops.schemas.security import ApiModel

T = TypeVar("T")


class Page(ApiModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int


class AuditLogOut(ApiModel):
    id: str
    request_id: str
    entity_type: str
    entity_id: str | None
    action: str
    severity: str
    scope: str | None
    division_id: int | None
    before_data: Any = None
    after_data: Any = None
    meta: Any = None
    actor_id: int
    actor_role: str | None
    reason: str | None
    created_at: datetime


class AuditFiltersIn(ApiModel):
    entity_type: str | None = Field(default=None, max_length=50)
    entity_id: str | None = None
    action: str | None = Field(default=None, max_length=30)
    actor_id: int | None = None
    request_id: str | None = Field(default=None, max_length=60)
    created_from: datetime | None = None
    created_to: datetime | None = None


class AuditExportIn(ApiModel):
    filters: AuditFiltersIn = Field(default_factory=AuditFiltersIn)
    reason: str = Field(min_length=1)


class AuditExportOut(ApiModel):
    file_name: str
    row_count: int
    size_bytes: int
    token: str
    expires_at: int
    download_url: str
