from __future__ import annotations

from collections.abc import Callable

from coreops.security.gate import PermissionRequirement
from coreops.security.scope import ScopeResolver


def _attach(fn: Callable, requirement: PermissionRequirement, resolver: ScopeResolver | None) -> Callable:
    setattr(fn, "__security_requirement__", requirement)
    if resolver is not None:
        setattr(fn, "__security_scope_resolver__", resolver)
    return fn


def require_permission(code: str, scope: str | ScopeResolver | None = None) -> Callable:
    """
    Decorator-style alternative to a `permission:` route rule.

    Implementation detail:
    - This decorator does NOT perform the check itself.
    - It attaches metadata that the global security dependency reads *after*
      routing; `scope` is a registered resolver name or a resolver callable.
    """

    def decorator(fn: Callable) -> Callable:
        if callable(scope):
            return _attach(fn, PermissionRequirement.single(code), scope)
        return _attach(fn, PermissionRequirement.single(code, scope=scope), None)

    return decorator


def require_any_permission(codes: list[str], scope: str | ScopeResolver | None = None) -> Callable:
    """Decorator-style alternative to an `any_permissions:` route rule."""

    def decorator(fn: Callable) -> Callable:
        if callable(scope):
            return _attach(fn, PermissionRequirement.one_of(codes), scope)
        return _attach(fn, PermissionRequirement.one_of(codes, scope=scope), None)

    return decorator
