from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from coreops.security.gate import PermissionRequirement
from coreops.security.month_close import DEFAULT_EXEMPT_GROUPS, RouteGroup
from coreops.security.scope import registered_scope_resolvers


class AuthConfig(BaseModel):
    # "dummy": bearer token is the integer user id (local/dev).
    # "jwt": HS256 token signed with APP_JWT_SECRET; user id in `sub`.
    provider: str = "dummy"
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        if v not in ("dummy", "jwt"):
            raise ValueError(f"unknown auth provider {v!r}")
        return v


class DefaultRule(BaseModel):
    auth_required: bool = True


class MonthCloseConfig(BaseModel):
    exempt: list[RouteGroup] = Field(default_factory=lambda: sorted(DEFAULT_EXEMPT_GROUPS, key=lambda g: g.value))


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    permission: str | None = None
    any_permissions: list[str] = Field(default_factory=list)
    scope: str | None = None

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}

    @model_validator(mode="after")
    def _check_requirement(self) -> RouteRule:
        if self.permission and self.any_permissions:
            raise ValueError(f"route {self.path!r}: use either 'permission' or 'any_permissions', not both")
        if self.auth_required is False and (self.permission or self.any_permissions):
            raise ValueError(f"route {self.path!r}: a public route cannot require permissions")
        if self.scope and not (self.permission or self.any_permissions):
            raise ValueError(f"route {self.path!r}: 'scope' needs a permission requirement")
        if self.scope and self.scope not in registered_scope_resolvers():
            raise ValueError(f"route {self.path!r}: unknown scope resolver {self.scope!r}")
        return self

    def requirement(self) -> PermissionRequirement | None:
        if self.permission:
            return PermissionRequirement.single(self.permission, scope=self.scope)
        if self.any_permissions:
            return PermissionRequirement.one_of(self.any_permissions, scope=self.scope)
        return None


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    month_close: MonthCloseConfig = Field(default_factory=MonthCloseConfig)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    requirement: PermissionRequirement | None


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # Convert "/projects/{id}" -> r"^/projects/[^/]+$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config + route matching.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        compiled: list[tuple[str, re.Pattern[str], RouteRule]] = []
        for rule in self.model.routes:
            compiled.append((rule.path, _path_template_to_regex(rule.path), rule))

        # Prefer exact matches over templates.
        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = compiled

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    @property
    def month_close_exempt(self) -> frozenset[RouteGroup]:
        return frozenset(self.model.month_close.exempt)

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for _template, regex, candidate in self._compiled_rules:
            if method not in candidate.normalized_methods():
                continue
            if regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(auth_required=default.auth_required, requirement=None)


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    requirement = rule.requirement()
    # A permission requirement implies authentication even if the default is "public".
    inferred_auth_required = default.auth_required or requirement is not None

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        requirement=requirement,
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
