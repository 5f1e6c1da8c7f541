"""
Authentication: turn the bearer token into an ``AuthContext``.

Verifying identities is the job of an upstream identity provider; this module
only accepts what that step hands over. Two providers are supported:

- ``dummy``: the bearer token *is* the integer user id (local/dev/tests)
- ``jwt``: an HS256 token signed with ``APP_JWT_SECRET``; the user id is ``sub``
"""

from __future__ import annotations

import logging
from typing import Any

import jwt
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.errors import BadRequest, Unauthorized
from coreops.models.security import User
from coreops.security.config import SecurityConfig
from coreops.security.context import AuthContext
from coreops.settings import Settings

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request, config: SecurityConfig) -> str | None:
    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.lower().startswith(prefix.lower()):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise BadRequest(f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.")

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise BadRequest(f"Invalid {header_name}. Missing token after '{bearer_prefix}'.")
    return token


def _claims_from_jwt(token: str, settings: Settings) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.info("Token expired")
        raise Unauthorized("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("Token invalid: %s", type(exc).__name__)
        raise Unauthorized("Invalid token") from exc


def _user_id_from(token: str, config: SecurityConfig, settings: Settings) -> tuple[int, dict[str, Any]]:
    if config.auth.provider == "jwt":
        claims = _claims_from_jwt(token, settings)
        subject = claims.get("sub")
    else:
        claims = {}
        subject = token

    try:
        return int(str(subject)), claims
    except (TypeError, ValueError) as exc:
        logger.warning("Token subject is not a user id provider=%s", config.auth.provider)
        raise Unauthorized("Token missing subject") from exc


def load_active_user(db: Session, user_id: int) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if user is None or not user.is_active:
        raise Unauthorized("Invalid or inactive user")
    return user


def authenticate(
    request: Request,
    db: Session,
    config: SecurityConfig,
    settings: Settings,
    request_id: str,
) -> AuthContext | None:
    """Return the caller's AuthContext, or None when no credentials were sent."""

    token = extract_bearer_token(request, config)
    if token is None:
        return None

    user_id, claims = _user_id_from(token, config, settings)
    load_active_user(db, user_id)
    return AuthContext(user_id=user_id, request_id=request_id, claims=claims)
