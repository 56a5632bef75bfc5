import jwt
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from config import SECRET_KEY, JWT_ALGORITHM


def utcnow() -> datetime:
    """Current time as naive UTC, the form Mongo stores and returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a bearer token issued by the auth service; None when invalid or expired."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify token and return its identity claims if valid"""
    payload = decode_access_token(token)
    if payload is None:
        return None
    user_id = payload.get("user_id")
    if not user_id:
        return None
    return {"user_id": str(user_id), "is_admin": bool(payload.get("is_admin", False))}
