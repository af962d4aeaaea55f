"""Signed bearer tokens that scope API calls to a single creator."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "ct_session"


def create_session_token(user_id: str, expires_hours: Optional[int] = None) -> Dict[str, Any]:
    """Issue a session token for ``user_id``; returns ``{token, expires_at}``."""
    issued_at = datetime.now(timezone.utc)
    ttl_hours = max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1)
    expires_at = issued_at + timedelta(hours=ttl_hours)
    token = jwt.encode(
        {
            "sub": user_id,
            "type": SESSION_TOKEN_TYPE,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        },
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"token": token, "expires_at": int(expires_at.timestamp())}


def decode_session_token(token: str) -> str:
    """Validate a session token and return the user id it was issued for."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if str(claims.get("type", "")).strip() != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")

    user_id = str(claims.get("sub", "")).strip()
    if not user_id:
        raise ValueError("Session token missing subject.")
    return user_id
