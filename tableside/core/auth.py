"""
JWT Authentication utilities
"""

from datetime import datetime, timedelta
from jose import JWTError, jwt
from typing import Any, Dict, Optional
import uuid

from tableside.core.config import get_settings

settings = get_settings()


def create_access_token(
    staff_id: str,
    role: str,
    is_admin: bool = False,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a staff JWT access token"""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(staff_id),
        "role": role,
        "isAdmin": is_admin,
        "exp": expire,
        "iat": datetime.utcnow(),
    }

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_guest_token(claims: Dict[str, Any]) -> str:
    """Sign a guest session token; the jti keeps two tokens with equal claims apart"""
    to_encode = dict(claims)
    to_encode.update({
        "jti": uuid.uuid4().hex,
        "iat": datetime.utcnow(),
        "role": "guest",
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None

