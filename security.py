"""
Password hashing and signed session tokens.

Tokens are HS256 JWTs carrying the caller's id, role, email and full name. A token is
valid until it expires; there is no revocation list.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Header
from passlib.hash import bcrypt
from pydantic import BaseModel

from database import utcnow
from errors import AuthenticationError
from schemas import Role
from settings import get_settings

logger = logging.getLogger(__name__)


class TokenClaims(BaseModel):
    user_id: str
    role: Role
    email: Optional[str] = None
    full_name: Optional[str] = None


def hash_password(password: str) -> str:
    return bcrypt.using(rounds=get_settings().BCRYPT_ROUNDS).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def issue_token(user: Dict[str, Any], expires_in: Optional[timedelta] = None) -> str:
    settings = get_settings()
    now = utcnow()
    payload = {
        "sub": str(user["_id"]),
        "role": user.get("role", "student"),
        "email": user.get("email"),
        "full_name": user.get("full_name"),
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else timedelta(hours=settings.JWT_EXPIRES_HOURS)),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> TokenClaims:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", "TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected token: {e}")
        raise AuthenticationError("Invalid token", "TOKEN_INVALID")
    try:
        return TokenClaims(
            user_id=payload["sub"],
            role=payload.get("role"),
            email=payload.get("email"),
            full_name=payload.get("full_name"),
        )
    except ValueError:
        raise AuthenticationError("Invalid token", "TOKEN_INVALID")


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing Authorization header", "TOKEN_MISSING")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise AuthenticationError("Invalid Authorization header", "TOKEN_INVALID")
    return parts[1]


def get_current_user(authorization: Optional[str] = Header(None)) -> TokenClaims:
    return verify_token(extract_bearer_token(authorization))
