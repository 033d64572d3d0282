import time
import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, Optional

import jwt
from fastapi import Depends, Header, Request
from passlib.context import CryptContext
from pydantic import BaseModel
from pymongo.database import Database

import config
from database import get_db, to_object_id
from errors import AuthError, NotFound, PermissionDenied, RateLimited

logger = logging.getLogger("storefront.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenData(BaseModel):
    user_id: str
    email: str
    role: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        logger.warning("Stored password hash is not in a recognised format")
        return False


def create_token(user_doc: Dict[str, Any]) -> str:
    payload = {
        "sub": str(user_doc.get("_id")),
        "email": user_doc.get("email"),
        "role": user_doc.get("role", "user"),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=config.JWT_EXP_MIN),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> TokenData:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
        return TokenData(user_id=payload["sub"], email=payload["email"], role=payload.get("role", "user"))
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except (jwt.InvalidTokenError, KeyError):
        raise AuthError("Invalid token")


def _user_from_header(authorization: Optional[str], database: Database) -> Optional[Dict[str, Any]]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Invalid authorization header")
    token_data = decode_token(token)
    try:
        user_id = to_object_id(token_data.user_id)
    except NotFound:
        raise AuthError("Invalid token payload")
    user = database["user"].find_one({"_id": user_id})
    if not user:
        raise AuthError("User not found")
    if not user.get("isActive", True):
        raise AuthError("Account is deactivated")
    return user


async def get_optional_user(authorization: Optional[str] = Header(default=None),
                            database: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    return _user_from_header(authorization, database)


async def get_current_user(authorization: Optional[str] = Header(default=None),
                           database: Database = Depends(get_db)) -> Dict[str, Any]:
    user = _user_from_header(authorization, database)
    if not user:
        raise AuthError("Not authorized, no token")
    return user


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "admin"


async def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not is_admin(user):
        raise PermissionDenied("Admin access required")
    return user


class SlidingWindowLimiter:
    """
    Per-key sliding window: at most `limit` hits inside any `window` seconds.

    Used as a FastAPI dependency; the key is the client IP.
    """

    def __init__(self, limit: int, window: float):
        self.limit = limit
        self.window = window
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> None:
        now = time.monotonic()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window:
                hits.popleft()
            if len(hits) >= self.limit:
                retry_after = int(self.window - (now - hits[0])) + 1
                logger.warning("Rate limit exceeded for %s", key)
                raise RateLimited("Too many login attempts. Please try again later.", retry_after=retry_after)
            hits.append(now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    async def __call__(self, request: Request) -> None:
        self.hit(request.client.host if request.client else "unknown")


login_limiter = SlidingWindowLimiter(config.LOGIN_RATE_LIMIT, config.LOGIN_RATE_WINDOW)
