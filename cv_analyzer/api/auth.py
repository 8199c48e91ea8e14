"""Bearer-token authentication for portal users."""

import logging
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from cv_analyzer.config import settings
from cv_analyzer.db.base import get_db
from cv_analyzer.db.tables import User

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_COOKIE = "token"


def _read_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.cookies.get(TOKEN_COOKIE)


def decode_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET not configured")
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Rejected token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token.")


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Resolve the calling user from a Bearer header or the token cookie."""
    token = _read_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")

    payload = decode_token(token)
    if payload.get("type") != "user":
        raise HTTPException(status_code=403, detail="Access denied. User account required.")

    user = db.get(User, str(payload.get("userId", "")))
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token.")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated.")

    request.state.user_id = user.id
    return user


def create_token(user_id: str, expires_in_seconds: int = 3600) -> str:
    """Issue a user token. Used by tests and local tooling."""
    payload = {
        "userId": user_id,
        "type": "user",
        "exp": datetime.now(UTC) + timedelta(seconds=expires_in_seconds),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)
