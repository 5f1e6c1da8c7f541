"""
Scope resolvers: map a request to the division it targets.

A resolver receives a ``ScopeRequest`` and returns a division id (as a string)
or ``None``. ``None`` means "no single division": the target is missing, the
id is malformed or the scope is ambiguous. The permission gate then only
admits COMPANY-scoped grants, so resolvers must return ``None`` instead of
raising in those cases.

Resolvers are registered by name so YAML route rules and decorators can refer
to them (``scope: project``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.models.governance import Project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeRequest:
    path_params: Mapping[str, Any]
    query_params: Mapping[str, Any]
    body: Any
    db: Session


ScopeResolver = Callable[[ScopeRequest], str | None]

_registry: dict[str, ScopeResolver] = {}


class UnknownScopeResolverError(KeyError):
    pass


def scope_resolver(name: str) -> Callable[[ScopeResolver], ScopeResolver]:
    """Register `fn` under `name` for use in route rules."""

    def decorator(fn: ScopeResolver) -> ScopeResolver:
        if name in _registry and _registry[name] is not fn:
            raise ValueError(f"scope resolver {name!r} already registered")
        _registry[name] = fn
        return fn

    return decorator


def get_scope_resolver(name: str) -> ScopeResolver:
    try:
        return _registry[name]
    except KeyError as exc:
        raise UnknownScopeResolverError(name) from exc


def registered_scope_resolvers() -> frozenset[str]:
    return frozenset(_registry)


def _as_division_id(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    return None


def _as_int(value: Any) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


@scope_resolver("project")
def project_division(req: ScopeRequest) -> str | None:
    """Division owning the project named by the `id` path parameter."""

    project_id = _as_int(req.path_params.get("id"))
    if project_id is None:
        return None
    division_id = req.db.execute(select(Project.division_id).where(Project.id == project_id)).scalar_one_or_none()
    if division_id is None:
        logger.debug("Scope: project %s not found", project_id)
        return None
    return str(division_id)


@scope_resolver("path.division_id")
def path_division(req: ScopeRequest) -> str | None:
    return _as_division_id(req.path_params.get("division_id"))


@scope_resolver("query.divisionId")
def query_division(req: ScopeRequest) -> str | None:
    return _as_division_id(req.query_params.get("divisionId"))


@scope_resolver("body.divisionId")
def body_division(req: ScopeRequest) -> str | None:
    if not isinstance(req.body, dict):
        return None
    return _as_division_id(req.body.get("divisionId"))
