"""
Access token handling.

Tokens are minted by the hosted auth provider (HS256 with the project's
JWT secret, audience "authenticated"). We only need to validate them;
`create_access_token` mirrors the provider's shape for local tooling and
tests.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from carbon_market.config import settings

ALGORITHM = "HS256"


def create_access_token(user_id: str, email: str | None = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and validate an access token. Raises JWTError on failure."""
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[ALGORITHM],
        audience=settings.jwt_audience,
    )
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload
