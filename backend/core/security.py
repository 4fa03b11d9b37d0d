# backend/core/security.py
from datetime import datetime, timedelta
from typing import Optional
import hashlib
import hmac
import os

from jose import JWTError, jwt
from core.config import settings

PBKDF2_ITERATIONS = 310000


def hash_password(plain: str) -> str:
    """Hash a password with PBKDF2-SHA256 and a random 32-byte salt."""
    salt = os.urandom(32)
    key = hashlib.pbkdf2_hmac("sha256", plain.encode(), salt, PBKDF2_ITERATIONS)
    return salt.hex() + ":" + key.hex()


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time check of a password against a stored `salt:key` hash."""
    try:
        salt_hex, key_hex = hashed.split(":")
        salt = bytes.fromhex(salt_hex)
        key = bytes.fromhex(key_hex)
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", plain.encode(), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(key, candidate)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    issued = datetime.utcnow()
    expire = issued + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": str(user_id), "exp": expire, "iat": issued}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[int]:
    """Return the user id carried by a valid token, else None."""
    try:
        data = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    sub = data.get("sub")
    if sub is None or not str(sub).isdigit():
        return None
    return int(sub)
