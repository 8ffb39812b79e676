"""Bearer token authentication."""

import secrets
from typing import Optional

from fastapi import HTTPException


def require_user(authorization: Optional[str]) -> str:
    """Resolve the calling user from an ``Authorization: Bearer`` header.

    Raises:
        HTTPException: 401 when the token is missing or unknown
    """
    from . import runtime_env_settings

    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    presented = authorization[7:].strip()
    tokens = runtime_env_settings.api_tokens if runtime_env_settings else {}

    for token, user_id in tokens.items():
        if secrets.compare_digest(presented.encode(), token.encode()):
            return user_id

    raise HTTPException(
        status_code=401,
        detail="Invalid API token",
        headers={"WWW-Authenticate": "Bearer"},
    )
