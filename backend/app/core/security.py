"""
Bearer-token verification for the ward service.

Identities are issued by the institution's identity provider; this service
only verifies the signed token and exposes the caller as a ``CurrentUser``.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import settings

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: str
    email: str
    name: str
    role: str
    institution_id: str
    institution_name: Optional[str] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def user_from_payload(payload: dict) -> Optional[CurrentUser]:
    required = ("sub", "email", "role", "institution_id")
    if not all(payload.get(key) for key in required):
        return None
    return CurrentUser(
        id=payload["sub"],
        email=payload["email"],
        name=payload.get("name") or payload["email"],
        role=payload["role"],
        institution_id=payload["institution_id"],
        institution_name=payload.get("institution_name"),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    payload = decode_access_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise unauthorized
    user = user_from_payload(payload)
    if user is None:
        raise unauthorized
    return user


def require_role(*roles: str):
    """Dependency factory: allow only the given roles."""

    def checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient role for this operation")
        return current_user

    return checker
