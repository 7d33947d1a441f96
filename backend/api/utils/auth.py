"""Authentication utilities

Tokens are issued by the surrounding application; this service only verifies
them. The ``sub`` claim is the user id every prediction is scoped to.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from api.config import settings
from api.schemas.auth import TokenData
from api.utils.exceptions import UnauthorizedException

# Security
security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> TokenData:
    """Decode and verify JWT token"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedException("Could not validate credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Could not validate credentials")

    return TokenData(user_id=str(user_id))


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenData:
    """Get current user from JWT token"""
    if credentials is None:
        raise UnauthorizedException("Not authenticated")
    return decode_access_token(credentials.credentials)


def get_current_user_id(user: TokenData = Depends(get_current_user)) -> str:
    return user.user_id
