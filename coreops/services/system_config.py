from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.models.governance import SystemConfig
from coreops.settings import get_settings

MONTH_CLOSE_ENABLED = "MONTH_CLOSE_ENABLED"

_TRUTHY = frozenset({"true", "1", "yes", "enabled"})


def get_config_value(db: Session, key: str) -> str | None:
    return db.execute(select(SystemConfig.value).where(SystemConfig.key == key)).scalar_one_or_none()


def is_truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


def is_month_close_enabled(db: Session, fallback: bool | None = None) -> bool:
    """`MONTH_CLOSE_ENABLED` from system_config; `fallback` (APP_MONTH_CLOSE_ENABLED by default) when the row is absent."""

    value = get_config_value(db, MONTH_CLOSE_ENABLED)
    if value is None:
        return get_settings().month_close_enabled if fallback is None else fallback
    return is_truthy(value)
