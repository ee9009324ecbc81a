"""Signed credentials and password hashing."""

from datetime import datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from ephemera.config import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, role: str, session_id: int, issued_at: datetime) -> str:
    """Issue a credential carrying the user id, role and login session."""

    to_encode = {
        "sub": str(user_id),
        "role": role,
        "sid": session_id,
        "iat": int(issued_at.timestamp()),
        "exp": issued_at + timedelta(minutes=settings.jwt_expire_minutes),
    }

    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
