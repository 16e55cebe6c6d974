import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

import config
from errors import AuthenticationError, AuthorizationError

security = HTTPBearer(auto_error=False)


class TokenUser(BaseModel):
    """Claims carried by a verified session token."""
    id: str
    is_admin: bool = False


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


def generate_otp(length: int = 6) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def hash_otp(otp: str) -> str:
    return hashlib.sha256(str(otp).strip().encode()).hexdigest()


def otp_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=config.OTP_TTL_MINUTES)


def otp_expired(expires_at: Optional[datetime]) -> bool:
    if expires_at is None:
        return True
    # pymongo hands back naive UTC datetimes
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) > expires_at


def create_token(user_id: str, is_admin: bool) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRES_DAYS)
    to_encode = {"id": str(user_id), "is_admin": bool(is_admin), "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        config.COOKIE_NAME,
        token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="none" if config.COOKIE_SECURE else "lax",
        max_age=config.COOKIE_MAX_AGE,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        config.COOKIE_NAME,
        path="/",
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="none" if config.COOKIE_SECURE else "lax",
    )


def get_current_user(request: Request,
                     credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> TokenUser:
    token = request.cookies.get(config.COOKIE_NAME)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise AuthenticationError()
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    return TokenUser(id=user_id, is_admin=bool(payload.get("is_admin")))


def require_admin(user: TokenUser = Depends(get_current_user)) -> TokenUser:
    if not user.is_admin:
        raise AuthorizationError("Admin only")
    return user
