"""
JWT Token Handling

Verify access tokens issued by the external identity provider and turn
them into principals. Credential checks happen at the provider; this
module only trusts signed tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from warden.api.access.identity import Principal
from warden.api.config import settings


def create_access_token(
    uid: str,
    email: Optional[str],
    email_verified: bool = False,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Create a new access token for a principal.

    Args:
        uid: Principal id at the identity provider
        email: Principal's email
        email_verified: Provider's verification flag
        expires_minutes: Override for token lifetime

    Returns:
        Encoded JWT access token
    """
    now = datetime.now(timezone.utc)
    lifetime = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = now + timedelta(minutes=lifetime)

    payload = {
        "sub": uid,
        "email": email,
        "email_verified": email_verified,
        "iat": now,
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string
        token_type: Expected token type

    Returns:
        Decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )

        if payload.get("type") != token_type:
            return None

        return payload

    except ExpiredSignatureError:
        return None
    except InvalidTokenError:
        return None


def principal_from_token(token: str) -> Optional[Principal]:
    """Decode an access token into a Principal, or None if invalid."""
    payload = verify_token(token, "access")
    if not payload or not payload.get("sub"):
        return None

    return Principal(
        uid=str(payload["sub"]),
        email=payload.get("email"),
        email_verified=bool(payload.get("email_verified", False)),
    )
