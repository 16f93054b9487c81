"""
Authentication module for JWT token management.

Issues and verifies the bearer tokens used by the REST API and the WebSocket
handshake.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Header, HTTPException
from jose import JWTError, jwt
from pydantic import BaseModel


SECRET_KEY = os.environ.get("AUTOPGP_SECRET_KEY", "change-this-secret-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours


class Token(BaseModel):
    """Token response model"""
    access_token: str
    token_type: str
    username: str


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Data to encode in the token
        expires_delta: Token expiration time

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[str]:
    """
    Verify a JWT token and extract username.

    Args:
        token: JWT token to verify

    Returns:
        Username if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def current_user(authorization: str = Header(default="")) -> str:
    """FastAPI dependency resolving the bearer token to a username"""
    scheme, _, token = authorization.partition(" ")
    username = verify_token(token) if scheme.lower() == "bearer" else None
    if not username:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return username
