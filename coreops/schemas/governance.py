from __future__ import annotations

from datetime import date, datetime

from pydantic import Field

from coreops.models.governance import MonthCloseStatus
from coreops.schemas.security import ApiModel


class ProjectOut(ApiModel):
    id: int
    code: str
    name: str
    division_id: int
    version: int
    created_at: datetime
    updated_at: datetime


class ProjectCreate(ApiModel):
    code: str = Field(min_length=1, max_length=30)
    name: str = Field(min_length=1, max_length=200)
    division_id: int


class ProjectUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    # Version the client last saw; a stale value is rejected with 409.
    version: int


class MonthCloseOut(ApiModel):
    id: int | None = None
    month: date
    scope: str
    status: MonthCloseStatus
    closed_by: int | None = None
    closed_at: datetime | None = None
    reason: str | None = None
    opened_by: int | None = None
    opened_at: datetime | None = None


class MonthCloseStatusIn(ApiModel):
    month: str = Field(description="YYYY-MM or any date inside the month")
    status: MonthCloseStatus
    reason: str = Field(min_length=1)


class SystemConfigOut(ApiModel):
    key: str
    value: str | None
    description: str | None
    updated_at: datetime


class SystemConfigIn(ApiModel):
    value: str | None
    description: str | None = None
