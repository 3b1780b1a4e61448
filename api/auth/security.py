"""
Auth security helpers.

Access tokens are issued out-of-band (identity provider or ops tooling); this
service only verifies them.
"""

from __future__ import annotations

import time
from typing import Any

import jwt

DEFAULT_ACCESS_TOKEN_MINUTES = 15


class AuthSecurityError(RuntimeError):
    pass


def now_epoch_s() -> int:
    return int(time.time())


def build_access_token(
    *,
    subject: str,
    secret: str,
    algorithm: str = "HS256",
    expires_minutes: int = DEFAULT_ACCESS_TOKEN_MINUTES,
    claims: dict[str, Any] | None = None,
) -> str:
    issued_at = now_epoch_s()
    payload = {
        **(claims or {}),
        "sub": str(subject),
        "type": "access",
        "iat": issued_at,
        "exp": issued_at + (expires_minutes * 60),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, *, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Access token is empty.")

    try:
        payload = jwt.decode(raw, secret, algorithms=[algorithm])
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Invalid access token.") from exc

    token_type = str(payload.get("type") or "").strip().lower()
    if token_type != "access":
        raise AuthSecurityError("Token is not an access token.")

    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise AuthSecurityError("Invalid access token subject.")

    return payload
