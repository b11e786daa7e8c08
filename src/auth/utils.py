from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from src.auth.schemas import Role, TokenData
from src.config import settings

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT carrying the subject and role claims"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str, credentials_exception) -> TokenData:
    """Decode a JWT, raising ``credentials_exception`` when it is unusable"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    try:
        role = Role(payload.get("role", Role.USER.value))
    except ValueError:
        raise credentials_exception

    return TokenData(user_id=str(user_id), role=role)
