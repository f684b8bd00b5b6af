from datetime import datetime, timedelta, timezone
from jose import jwt
from app.core.config import settings


# ── JWT Token ─────────────────────────────────────────────────────────
# Sessions are issued by the auth service (email OTP). This API only needs to
# read them; create_access_token exists for tooling and tests.
def create_access_token(user_id: int, roles: list[str] | None = None, expires_minutes: int | None = None) -> str:
    """
    Payload contains:
      sub   - user ID (standard JWT claim)
      roles - role names at issue time (informational, DB is authoritative)
      type  - guards against using wrong token types
      iat   - issued at
      exp   - expiry (ACCESS_TOKEN_EXPIRE_MINUTES in .env)
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub":   str(user_id),
        "roles": list(roles or []),
        "type":  "access",
        "iat":   now,
        "exp":   now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decodes and verifies JWT signature + expiry.
    Raises jose.JWTError on any failure.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
