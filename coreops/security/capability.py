"""
Capability tokens for one follow-up action (downloading a generated export).

A capability token is a short-lived bearer credential that authorizes exactly
one artifact without re-running the permission gate. It is an HS256 JWT with a
fixed audience and a ``ver`` claim, so fields can be added later without
inventing a new wire format::

    {"ver": 1, "aud": "coreops:export-download", "rel": "<relative path>",
     "fn": "<download file name>", "exp": <epoch s>, "exp_ms": <epoch ms>,
     "sub": "<actor id>"}

Verification failures of any kind (bad signature, expired, wrong audience,
missing claims, actor mismatch) raise ``Forbidden``. Whether the referenced
file may be served is decided separately by ``resolve_within``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

import jwt

from coreops.errors import Forbidden

logger = logging.getLogger(__name__)

TOKEN_VERSION = 1
DOWNLOAD_AUDIENCE = "coreops:export-download"
_ALGORITHM = "HS256"


@dataclass(frozen=True)
class CapabilityClaims:
    rel_path: str
    file_name: str
    exp: int
    """Expiry in epoch milliseconds."""


class CapabilityTokenService:
    def __init__(self, secret: str, audience: str = DOWNLOAD_AUDIENCE) -> None:
        if not secret:
            raise ValueError("capability token secret must not be empty")
        self._secret = secret
        self._audience = audience

    def issue(self, rel_path: str, file_name: str, exp_epoch_ms: int, actor_id: int | str | None) -> str:
        payload: dict[str, object] = {
            "ver": TOKEN_VERSION,
            "aud": self._audience,
            "rel": rel_path,
            "fn": file_name,
            # Rounded up so the millisecond check below decides, not the whole-second claim.
            "exp": -(-int(exp_epoch_ms) // 1000),
            "exp_ms": int(exp_epoch_ms),
        }
        if actor_id is not None:
            payload["sub"] = str(actor_id)
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM, headers={"typ": "CAP"})

    def verify(self, token: str, expected_actor_id: int | str | None) -> CapabilityClaims:
        raw = (token or "").strip()
        if not raw:
            raise Forbidden("Invalid token")

        try:
            payload = jwt.decode(
                raw,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                options={"require": ["exp", "aud", "rel", "fn", "ver"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("Capability token expired")
            raise Forbidden("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.info("Capability token invalid: %s", type(exc).__name__)
            raise Forbidden("Invalid token") from exc

        if payload.get("ver") != TOKEN_VERSION:
            raise Forbidden("Invalid token")

        exp_ms = int(payload.get("exp_ms") or int(payload["exp"]) * 1000)
        if exp_ms < int(time.time() * 1000):
            raise Forbidden("Token expired")

        token_actor = payload.get("sub")
        if token_actor is not None and str(token_actor) != str(expected_actor_id):
            logger.info("Capability token actor mismatch")
            raise Forbidden()

        rel_path = payload["rel"]
        file_name = payload["fn"]
        if not isinstance(rel_path, str) or not rel_path or not isinstance(file_name, str) or not file_name:
            raise Forbidden("Invalid token")

        return CapabilityClaims(rel_path=rel_path, file_name=file_name, exp=exp_ms)


def resolve_within(root: Path, rel_path: str) -> Path:
    """
    Canonical absolute path of `rel_path` under `root`.

    Raises Forbidden when the path (after resolving `..` and symlinks) leaves
    `root`, whatever the token that carried it says.
    """

    base = root.resolve()
    candidate = Path(rel_path)
    if candidate.is_absolute():
        raise Forbidden()
    resolved = (base / candidate).resolve()
    if base not in resolved.parents:
        logger.warning("Refused path outside export storage rel_path=%s", rel_path)
        raise Forbidden()
    return resolved
