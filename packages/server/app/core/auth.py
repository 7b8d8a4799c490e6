"""
Authentication for CRM app-extension surfaces.

The CRM loads each surface (deal panel, settings page) with a signed JWT in
the ``token`` query parameter. Every surface request carries it back; the
signature is verified with the secret configured for that surface.

Marketplace callbacks (app uninstall) authenticate with HTTP Basic using the
OAuth client id and secret.
"""

from __future__ import annotations

import secrets
from typing import Callable, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.core.config import Settings, get_settings

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def decode_surface_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """Decode and verify a surface JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, secret, algorithms=[algorithm])


def _token_checker(secret_of: Callable[[Settings], str], surface: str):
    async def check(token: Optional[str] = Query(None)) -> dict:
        if not token:
            raise HTTPException(status_code=401, detail="Token is required")
        settings = get_settings()
        try:
            return decode_surface_token(token, secret_of(settings), settings.jwt_algorithm)
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except jwt.PyJWTError as exc:
            log.info("auth.token_rejected", surface=surface, error=str(exc))
            raise HTTPException(status_code=401, detail="Invalid token")

    return check


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

require_surface_token = _token_checker(lambda s: s.surface_jwt_secret, "surface")
require_settings_token = _token_checker(lambda s: s.settings_jwt_secret, "settings")


# ---------------------------------------------------------------------------
# Marketplace callbacks
# ---------------------------------------------------------------------------

client_basic = HTTPBasic(auto_error=False)


async def require_client_credentials(
    credentials: Optional[HTTPBasicCredentials] = Depends(client_basic),
) -> None:
    """Accept only callers presenting the OAuth client id and secret."""
    settings = get_settings()
    unauthorized = HTTPException(
        status_code=401,
        detail="Invalid client credentials",
        headers={"WWW-Authenticate": "Basic"},
    )
    if not credentials or not settings.client_id or not settings.client_secret:
        raise unauthorized
    id_ok = secrets.compare_digest(credentials.username.encode(), settings.client_id.encode())
    secret_ok = secrets.compare_digest(
        credentials.password.encode(), settings.client_secret.encode()
    )
    if not (id_ok and secret_ok):
        log.info("auth.client_credentials_rejected")
        raise unauthorized
