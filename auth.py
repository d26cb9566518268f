"""
Bearer credential issuing and checking.

Tokens are HS256 JWTs carrying the user id as ``sub`` and a fixed expiry;
there is no refresh flow and no revocation list.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from config import Settings
from errors import NotAuthenticated

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = 12

security = HTTPBearer(auto_error=False)


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), encoded.encode("utf-8"))
    except ValueError:
        # malformed stored hash, or a password past bcrypt's 72 byte limit
        return False


# verified against when the user does not exist, so both login failures cost the same
DUMMY_HASH = hash_password(secrets.token_hex(8))


def create_access_token(user_id: str, settings: Settings, now: Optional[datetime] = None) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> str:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp", "sub"]})
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise NotAuthenticated()
    except jwt.InvalidTokenError:
        logger.info("Rejected invalid token")
        raise NotAuthenticated()
    return payload["sub"]


def resolve_user(db: Database, user_id: str) -> Optional[Dict[str, Any]]:
    try:
        return db["user"].find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        return None


def user_from_token(token: Optional[str], db: Database, settings: Settings) -> Dict[str, Any]:
    if not token:
        raise NotAuthenticated()
    user = resolve_user(db, decode_access_token(token, settings))
    if not user:
        raise NotAuthenticated()
    return user


def get_ctx(request: Request):
    return request.app.state.ctx


async def get_current_user(ctx=Depends(get_ctx), creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Dict[str, Any]:
    token = creds.credentials if creds is not None else None
    return user_from_token(token, ctx.db, ctx.settings)


def authenticate_websocket(websocket: WebSocket, ctx) -> Dict[str, Any]:
    return user_from_token(websocket.query_params.get("token"), ctx.db, ctx.settings)
