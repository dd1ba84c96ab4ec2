from __future__ import annotations

import logging
from typing import Optional

import jwt
from fastapi import Cookie, Depends, HTTPException

from api.settings import Settings, get_settings
from rollup.errors import ConfigurationMissing
from rollup.filters import Viewer

logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth"
ALGORITHMS = ["HS256"]


def decode_viewer(token: str, secret: str) -> Viewer:
    """Verify an ``auth`` token and read the caller's role and name from it."""
    claims = jwt.decode(token, secret, algorithms=ALGORITHMS)
    return Viewer(
        role=str(claims.get("role") or "admin"),
        name=str(claims.get("name") or ""),
    )


def require_viewer(
    auth: Optional[str] = Cookie(default=None),
    settings: Settings = Depends(get_settings),
) -> Viewer:
    if not settings.auth_secret:
        raise ConfigurationMissing("AUTH_SECRET")
    if not auth:
        raise HTTPException(status_code=401, detail="Not signed in")
    try:
        return decode_viewer(auth, settings.auth_secret)
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected auth token: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid or expired session") from exc
