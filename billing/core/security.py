from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from billing.core.config import settings
from billing.core.errors import ValidationError


def create_session_token(session_id: str, payee_platform_id: str,
                         expires_delta: timedelta | None = None) -> str:
    """Sign a bill-allocation session token for the web allocation page."""
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.BILL_SESSION_TTL_SECONDS)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": session_id,
        "payee": payee_platform_id,
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp())
    }

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Return the token claims or raise ValidationError if invalid or expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise ValidationError("Invalid or expired bill session token")

    if payload.get("sub") is None or payload.get("payee") is None:
        raise ValidationError("Invalid bill session token")
    return payload
