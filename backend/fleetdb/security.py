# backend/fleetdb/security.py

"""
Security helpers for fleetdb.

Responsibilities:
- Decoding bearer identities issued by the external identity provider
- FastAPI dependency returning the calling identity

Passwords and logins live with the identity provider; this service only
verifies the signed token and reads its `sub` claim.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE") or None

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

# auto_error is off so a missing header produces the same 401 as a bad token.
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as asserted by the identity provider."""

    user_id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    Tokens are normally minted by the identity provider; this is used by
    local tooling and tests that need a valid bearer value.
    """
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_identity_token(token: str) -> Identity:
    try:
        options = {"verify_aud": JWT_AUDIENCE is not None}
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            options=options,
        )
    except JWTError:
        raise _credentials_exception()

    subject = payload.get("sub")
    if subject is None or not str(subject).strip():
        raise _credentials_exception()

    return Identity(
        user_id=str(subject).strip(),
        email=payload.get("email"),
        claims=payload,
    )


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """
    Decode the bearer token and return the calling identity.

    The token is expected to contain a `sub` claim with the external user id.
    """
    if credentials is None or not credentials.credentials:
        raise _credentials_exception()
    return decode_identity_token(credentials.credentials)
