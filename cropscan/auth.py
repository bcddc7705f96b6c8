"""
Bearer-token identity for per-user scan history.

Tokens are HS256 JWTs with `sub` (user id) and `username` claims, signed with
JWT_SECRET. Accounts themselves are managed by the identity provider that
issues the tokens.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"


def get_jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "please_change_this_secret")


def create_access_token(user: Dict[str, Any], expires_days: int = 7) -> str:
    payload = {
        "sub": str(user["id"]),
        "username": user.get("username"),
        "exp": datetime.now(timezone.utc) + timedelta(days=expires_days),
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALG)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALG])
    except jwt.PyJWTError as e:
        logger.info("Rejected access token: %s", e)
        return None


def get_current_user(authorization: Optional[str] = Header(None)) -> Optional[Dict[str, Any]]:
    if not authorization:
        return None
    if authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1]
    else:
        token = authorization
    data = decode_access_token(token)
    if not data or not data.get("sub"):
        return None
    return {"id": data.get("sub"), "username": data.get("username")}
