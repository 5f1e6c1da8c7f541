from __future__ import annotations

import logging
from json import JSONDecodeError
from pathlib import Path
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from coreops.db.session import get_db
from coreops.errors import Unauthorized
from coreops.request_id import get_request_id
from coreops.security.auth import authenticate
from coreops.security.capability import CapabilityTokenService
from coreops.security.config import SecurityConfig
from coreops.security.context import AuthContext, AuthorizationContext
from coreops.security.gate import PermissionRequirement, check_permission
from coreops.security.month_close import MonthCloseGate, RouteGroup, route_groups_from_tags
from coreops.security.scope import ScopeRequest, ScopeResolver, get_scope_resolver
from coreops.settings import Settings

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Was the app built with create_app()?")
    return config


def get_month_close_gate(request: Request) -> MonthCloseGate:
    gate = getattr(request.app.state, "month_close_gate", None)
    if gate is None:
        raise RuntimeError("Month-close gate not configured. Was the app built with create_app()?")
    return gate


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("Settings not configured. Was the app built with create_app()?")
    return settings


def get_auth_context(request: Request) -> AuthContext:
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise Unauthorized("Authentication required")
    return auth


def get_authorization(request: Request) -> AuthorizationContext:
    authz = getattr(request.state, "authorization", None)
    if authz is None:
        # Route ran without a permission requirement; expose an empty context.
        return AuthorizationContext(roles=frozenset(), permissions=frozenset())
    return authz


def _route_groups(request: Request) -> frozenset[RouteGroup]:
    # The matched APIRoute carries its router's tags; app.routes may only hold included-router wrappers.
    route = request.scope.get("route")
    return route_groups_from_tags(getattr(route, "tags", None) or [])


async def _json_body(request: Request) -> Any:
    if request.method.upper() in ("GET", "HEAD", "OPTIONS"):
        return None
    if "json" not in request.headers.get("content-type", ""):
        return None
    try:
        return await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        return None


async def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    month_close_gate: MonthCloseGate = Depends(get_month_close_gate),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
) -> None:
    """
    Global security dependency, configuration-driven.

    Order per request:
    1. authenticate (unless the route is public)
    2. permission gate, when the route (YAML rule or decorator) requires one
    3. month-close gate, independent of whatever step 2 decided, public routes included

    Runs after routing, so decorator metadata and route tags are available, and
    requires no changes to route handlers when added globally.
    """

    path = request.url.path
    method = request.method.upper()

    rule = config.match(path, method)

    endpoint = request.scope.get("endpoint")
    decorator_requirement: PermissionRequirement | None = (
        getattr(endpoint, "__security_requirement__", None) if endpoint else None
    )
    decorator_resolver: ScopeResolver | None = (
        getattr(endpoint, "__security_scope_resolver__", None) if endpoint else None
    )

    requirement = decorator_requirement or rule.requirement
    if not rule.auth_required and requirement is None:
        month_close_gate.check(db, method, _route_groups(request))
        return

    request_id = getattr(request.state, "request_id", None) or get_request_id()
    auth = authenticate(request, db, config, settings, request_id)
    if auth is None:
        raise Unauthorized("Authentication required")
    request.state.auth = auth

    if requirement is not None:
        resolver = decorator_resolver
        if resolver is None and requirement.scope:
            resolver = get_scope_resolver(requirement.scope)

        body = await _json_body(request) if resolver is not None else None

        def scope_request() -> ScopeRequest:
            return ScopeRequest(
                path_params=request.path_params,
                query_params=request.query_params,
                body=body,
                db=db,
            )

        request.state.authorization = check_permission(db, auth, requirement, scope_request, resolver)

    month_close_gate.check(db, method, _route_groups(request))


def get_capability_tokens(request: Request) -> CapabilityTokenService:
    tokens = getattr(request.app.state, "capability_tokens", None)
    if tokens is None:
        raise RuntimeError("Capability token service not configured. Was the app built with create_app()?")
    return tokens


def get_export_root(request: Request) -> Path:
    root = getattr(request.app.state, "export_root", None)
    if root is None:
        raise RuntimeError("Export storage root not configured. Was the app built with create_app()?")
    return root
