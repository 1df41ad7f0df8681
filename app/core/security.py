from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt

from app.core.settings import settings


class JWTKeyError(RuntimeError):
    pass


def _uses_asymmetric_keys() -> bool:
    return settings.jwt_algorithm.upper().startswith(("RS", "ES", "PS"))


@lru_cache(maxsize=1)
def _load_private_key() -> str:
    if not _uses_asymmetric_keys():
        return settings.secret_key
    if settings.jwt_private_key:
        return settings.jwt_private_key
    if settings.jwt_private_key_path:
        return _read_key(settings.jwt_private_key_path)
    raise JWTKeyError("JWT private key not configured")


@lru_cache(maxsize=1)
def _load_public_key() -> str:
    if not _uses_asymmetric_keys():
        return settings.secret_key
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_public_key_path:
        return _read_key(settings.jwt_public_key_path)
    raise JWTKeyError("JWT public key not configured")


def _read_key(path: str) -> str:
    with open(path, "r", encoding="utf-8") as key_file:
        return key_file.read()


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    token_version: int | None = None,
    org_id: str | None = None,
) -> str:
    """Issue an access token. Login flows live in the identity service; this is
    kept for service-to-service calls and tests."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire, "type": "access"}
    if token_version is not None:
        to_encode["tv"] = token_version
    if org_id is not None:
        to_encode["org"] = org_id
    return jwt.encode(to_encode, _load_private_key(), algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, _load_public_key(), algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if expected_type and payload.get("type") != expected_type:
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload
