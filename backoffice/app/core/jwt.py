"""
Access tokens.

Tokens carry `sub` (email), `user_id` and `role`. The role in a token is a
hint only: `get_current_user` replaces it with the role stored on the
profile.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backoffice.app.core.config import settings

REQUIRED_CLAIMS = ("sub", "user_id", "role")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    missing = [claim for claim in REQUIRED_CLAIMS if claim not in data]
    if missing:
        raise ValueError(f"Token payload missing claims: {', '.join(missing)}")

    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def token_for_profile(profile, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token(
        {"sub": profile.email, "user_id": profile.id, "role": profile.role.value},
        expires_delta,
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Payload of a valid, unexpired token; None otherwise."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
