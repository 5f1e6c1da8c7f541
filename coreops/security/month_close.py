"""
Month-close enforcement.

A second gate, independent of permissions: while the current accounting month
is CLOSED for the company, mutating requests are refused even for callers who
passed the permission gate (super admins included). Reads are never blocked.

Which routes stay writable is an explicit, closed set of ``RouteGroup``
values; routes are tagged with their group, so renaming a URL cannot silently
drop an exemption.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.errors import BadRequest, MonthClosed
from coreops.models.governance import MonthCloseRecord, MonthCloseStatus
from coreops.models.security import GrantScope

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class RouteGroup(str, enum.Enum):
    ATTENDANCE = "attendance"
    TIMESHEETS = "timesheets"
    LEAVE = "leave"
    MONTH_CLOSE = "month_close"
    PROJECTS = "projects"
    SYSTEM_CONFIG = "system_config"
    AUDIT = "audit"
    ME = "me"
    HEALTH = "health"


DEFAULT_EXEMPT_GROUPS = frozenset(
    {RouteGroup.ATTENDANCE, RouteGroup.TIMESHEETS, RouteGroup.LEAVE, RouteGroup.MONTH_CLOSE}
)


def route_groups_from_tags(tags: Iterable[object]) -> frozenset[RouteGroup]:
    """Route groups named by a route's tags; tags that are not groups are ignored."""

    groups: set[RouteGroup] = set()
    for tag in tags:
        value = tag.value if isinstance(tag, enum.Enum) else str(tag)
        try:
            groups.add(RouteGroup(value))
        except ValueError:
            continue
    return frozenset(groups)


@dataclass(frozen=True)
class EnforcementPolicy:
    enabled: Callable[[Session], bool]
    exempt: frozenset[RouteGroup] = DEFAULT_EXEMPT_GROUPS

    def is_exempt(self, groups: Iterable[RouteGroup]) -> bool:
        return any(g in self.exempt for g in groups)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_start(value: date | datetime) -> date:
    return date(value.year, value.month, 1)


def parse_month(raw: str | date | datetime) -> date:
    """Accept `YYYY-MM`, `YYYY-MM-DD`, an ISO timestamp or a date; return the month's first day."""

    if isinstance(raw, (date, datetime)):
        return month_start(raw)

    text = str(raw or "").strip()
    if not text:
        raise BadRequest("Invalid month")
    try:
        if len(text) == 7:
            return month_start(datetime.strptime(text, "%Y-%m"))
        return month_start(date.fromisoformat(text[:10]))
    except ValueError as exc:
        raise BadRequest("Invalid month") from exc


def month_status(db: Session, month: date, scope: GrantScope = GrantScope.COMPANY) -> MonthCloseStatus:
    status = db.execute(
        select(MonthCloseRecord.status).where(MonthCloseRecord.month == month, MonthCloseRecord.scope == scope)
    ).scalar_one_or_none()
    return status or MonthCloseStatus.OPEN


class MonthCloseGate:
    """
    Usage:
        gate = MonthCloseGate(EnforcementPolicy(enabled=is_month_close_enabled))
        gate.check(db, method="POST", groups={RouteGroup.PROJECTS})
    """

    def __init__(self, policy: EnforcementPolicy, clock: Callable[[], datetime] = utc_now) -> None:
        self.policy = policy
        self._clock = clock

    def current_month(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return month_start(now)

    def check(self, db: Session, method: str, groups: Iterable[RouteGroup]) -> None:
        if method.upper() in SAFE_METHODS:
            return
        if self.policy.is_exempt(groups):
            return
        if not self.policy.enabled(db):
            return

        month = self.current_month()
        if month_status(db, month) is MonthCloseStatus.CLOSED:
            logger.info("Mutation refused: month %s is closed method=%s", month.isoformat(), method)
            raise MonthClosed()
