"""Tests for loading and matching the YAML route security config."""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from coreops.security.config import load_security_config
from coreops.security.month_close import RouteGroup

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "security_config.yaml"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "security.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_repo_config_loads():
    config = load_security_config(REPO_CONFIG)
    assert config.auth.provider == "dummy"
    assert config.month_close_exempt == {
        RouteGroup.ATTENDANCE,
        RouteGroup.TIMESHEETS,
        RouteGroup.LEAVE,
        RouteGroup.MONTH_CLOSE,
    }


def test_exact_match_then_template_then_default():
    config = load_security_config(REPO_CONFIG)

    listing = config.match("/api/v1/governance/projects", "get")
    assert listing.auth_required
    assert listing.requirement.codes == {"GOV_PROJECT_READ"}
    assert listing.requirement.scope == "query.divisionId"

    detail = config.match("/api/v1/governance/projects/12", "PATCH")
    assert detail.requirement.codes == {"GOV_PROJECT_WRITE"}
    assert detail.requirement.scope == "project"

    health = config.match("/healthz", "GET")
    assert not health.auth_required
    assert health.requirement is None

    unknown = config.match("/api/v1/unknown", "DELETE")
    assert unknown.auth_required
    assert unknown.requirement is None


def test_any_permissions_rule(tmp_path):
    config = load_security_config(
        _write(
            tmp_path,
            """
security:
  routes:
    - path: /things
      methods: [GET]
      any_permissions: [A, B]
""",
        )
    )
    rule = config.match("/things", "GET")
    assert rule.requirement.any_of
    assert rule.requirement.describe() == {"requiredPermissions": ["A", "B"]}


def test_permission_implies_auth_even_with_public_default(tmp_path):
    config = load_security_config(
        _write(
            tmp_path,
            """
security:
  default:
    auth_required: false
  routes:
    - path: /things
      methods: [POST]
      permission: A
""",
        )
    )
    assert config.match("/things", "POST").auth_required
    assert not config.match("/other", "GET").auth_required


@pytest.mark.parametrize(
    "route",
    [
        "{path: /x, permission: A, any_permissions: [B]}",
        "{path: /x, auth_required: false, permission: A}",
        "{path: /x, scope: project}",
        "{path: /x, permission: A, scope: no.such.resolver}",
    ],
)
def test_invalid_rules_are_rejected(tmp_path, route):
    with pytest.raises(ValidationError):
        load_security_config(_write(tmp_path, f"security:\n  routes:\n    - {route}\n"))


def test_unknown_provider_and_exempt_group_are_rejected(tmp_path):
    with pytest.raises(ValidationError):
        load_security_config(_write(tmp_path, "security:\n  auth:\n    provider: magic\n"))
    with pytest.raises(ValidationError):
        load_security_config(_write(tmp_path, "security:\n  month_close:\n    exempt: [payroll]\n"))


def test_missing_security_key(tmp_path):
    with pytest.raises(ValueError, match="security"):
        load_security_config(_write(tmp_path, "routes: []\n"))
