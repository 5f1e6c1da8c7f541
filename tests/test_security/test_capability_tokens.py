"""Tests for export capability tokens and storage path containment."""
from __future__ import annotations

import time

import jwt
import pytest

from coreops.errors import Forbidden
from coreops.security.capability import DOWNLOAD_AUDIENCE, CapabilityTokenService, resolve_within

SECRET = "unit-test-secret"


def _in(seconds: int) -> int:
    return int((time.time() + seconds) * 1000)


def test_round_trip():
    tokens = CapabilityTokenService(SECRET)
    token = tokens.issue("audit_log_1.csv", "audit_log_1.csv", _in(600), actor_id=7)

    claims = tokens.verify(token, expected_actor_id=7)
    assert claims.rel_path == "audit_log_1.csv"
    assert claims.file_name == "audit_log_1.csv"

    header = jwt.get_unverified_header(token)
    assert header["typ"] == "CAP"
    payload = jwt.decode(token, options={"verify_signature": False})
    assert payload["ver"] == 1
    assert payload["aud"] == DOWNLOAD_AUDIENCE
    assert payload["sub"] == "7"


def test_token_valid_until_its_last_millisecond():
    tokens = CapabilityTokenService(SECRET)
    exp_ms = int(time.time() * 1000) + 800
    token = tokens.issue("audit_log_2.csv", "audit_log_2.csv", exp_ms, actor_id=7)

    assert tokens.verify(token, expected_actor_id=7).exp == exp_ms

    payload = jwt.decode(token, options={"verify_signature": False})
    assert payload["exp"] * 1000 >= exp_ms


def test_expired_token_is_forbidden():
    tokens = CapabilityTokenService(SECRET)
    token = tokens.issue("a.csv", "a.csv", _in(-5), actor_id=1)
    with pytest.raises(Forbidden) as exc_info:
        tokens.verify(token, expected_actor_id=1)
    assert exc_info.value.message == "Token expired"


def test_tampered_signature_is_forbidden():
    tokens = CapabilityTokenService(SECRET)
    token = tokens.issue("a.csv", "a.csv", _in(600), actor_id=1)

    header, payload, signature = token.split(".")
    # Flip a character in the middle: the last base64url character may carry unused bits.
    mid = len(signature) // 2
    flipped = "A" if signature[mid] != "A" else "B"
    tampered = ".".join([header, payload, signature[:mid] + flipped + signature[mid + 1 :]])

    with pytest.raises(Forbidden):
        tokens.verify(tampered, expected_actor_id=1)


def test_other_secret_or_audience_is_forbidden():
    token = CapabilityTokenService(SECRET).issue("a.csv", "a.csv", _in(600), actor_id=1)
    with pytest.raises(Forbidden):
        CapabilityTokenService("another-secret").verify(token, expected_actor_id=1)
    with pytest.raises(Forbidden):
        CapabilityTokenService(SECRET, audience="coreops:something-else").verify(token, expected_actor_id=1)


def test_token_is_bound_to_its_actor():
    tokens = CapabilityTokenService(SECRET)
    token = tokens.issue("a.csv", "a.csv", _in(600), actor_id=1)
    with pytest.raises(Forbidden):
        tokens.verify(token, expected_actor_id=2)


@pytest.mark.parametrize("raw", ["", "   ", "not-a-token"])
def test_garbage_is_forbidden(raw):
    with pytest.raises(Forbidden):
        CapabilityTokenService(SECRET).verify(raw, expected_actor_id=1)


def test_empty_secret_is_rejected():
    with pytest.raises(ValueError):
        CapabilityTokenService("")


def test_resolve_within_accepts_nested_file(tmp_path):
    (tmp_path / "sub").mkdir()
    assert resolve_within(tmp_path, "sub/file.csv") == (tmp_path / "sub" / "file.csv").resolve()


@pytest.mark.parametrize("rel", ["../secret.csv", "sub/../../secret.csv", ".", ""])
def test_resolve_within_refuses_escape(tmp_path, rel):
    with pytest.raises(Forbidden):
        resolve_within(tmp_path, rel)


def test_resolve_within_refuses_absolute_path(tmp_path):
    with pytest.raises(Forbidden):
        resolve_within(tmp_path, str(tmp_path / "file.csv"))


def test_resolve_within_refuses_symlink_out(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    root = tmp_path / "root"
    root.mkdir()
    (root / "link").symlink_to(outside)

    with pytest.raises(Forbidden):
        resolve_within(root, "link/file.csv")
