import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import DUMMY_HASH, hash_password, verify_password
from database import create_document
from errors import DuplicateUser, InvalidCredentials, ValidationFailed
from schemas import SocialLinks, User as UserSchema
from validation import validate_login, validate_profile_update, validate_registration

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("bio", "avatar", "role", "location")


def normalize_email(email: str) -> str:
    return email.strip().casefold()


def public_user(u: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(u.get("_id")),
        "username": u.get("username"),
        "email": u.get("email"),
    }


def profile(u: Dict[str, Any]) -> Dict[str, Any]:
    data = public_user(u)
    data.update({
        "bio": u.get("bio", ""),
        "avatar": u.get("avatar"),
        "role": u.get("role", "influencer"),
        "social_links": u.get("social_links") or SocialLinks().model_dump(),
        "interests": u.get("interests", []),
        "location": u.get("location", ""),
        "followers": u.get("followers", 0),
        "following": u.get("following", 0),
    })
    return data


def register_user(db: Database, username: Optional[str], email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    result = validate_registration(username, email, password)
    if not result.ok:
        raise ValidationFailed(result)

    username = username.strip()
    email = normalize_email(email)
    if db["user"].find_one({"$or": [{"username": username}, {"email": email}]}):
        raise DuplicateUser()

    user = UserSchema(username=username, email=email, password_hash=hash_password(password))
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        # lost a race against a concurrent registration
        raise DuplicateUser()
    logger.info("Registered user %s", username)
    return db["user"].find_one({"_id": ObjectId(user_id)})


def authenticate(db: Database, password: Optional[str], username: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
    identifier = username if username else email
    result = validate_login(identifier, password)
    if not result.ok:
        raise ValidationFailed(result)

    if username:
        user = db["user"].find_one({"username": username.strip()})
    else:
        user = db["user"].find_one({"email": normalize_email(email)})

    if not user:
        verify_password(password, DUMMY_HASH)
        logger.info("Failed login for %s", identifier)
        raise InvalidCredentials()
    if not verify_password(password, user.get("password_hash", "")):
        logger.info("Failed login for %s", identifier)
        raise InvalidCredentials()
    return user


def _parse_interests(value) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    return [i.strip() for i in value if i.strip()]


def update_profile(db: Database, user: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    result = validate_profile_update(changes)
    if not result.ok:
        raise ValidationFailed(result)

    updates: Dict[str, Any] = {}
    for name in PROFILE_FIELDS:
        if changes.get(name) is not None:
            updates[name] = changes[name].strip() if name != "role" else changes[name]
    if changes.get("interests") is not None:
        updates["interests"] = _parse_interests(changes["interests"])
    links = changes.get("social_links")
    if links:
        merged = dict(user.get("social_links") or SocialLinks().model_dump())
        merged.update({k: v.strip() for k, v in links.items() if v is not None})
        updates["social_links"] = SocialLinks(**merged).model_dump()

    if updates:
        updates["updated_at"] = datetime.now(timezone.utc)
        db["user"].update_one({"_id": user["_id"]}, {"$set": updates})
    return db["user"].find_one({"_id": user["_id"]})


def list_contacts(db: Database, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    users = db["user"].find({"_id": {"$ne": user["_id"]}}, {"password_hash": 0}).sort("username", 1)
    return [profile(u) for u in users]


def dashboard(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    # pending_requests and recent_activity are placeholders until connection requests exist
    return {
        "total_connections": db["user"].count_documents({"_id": {"$ne": user["_id"]}}),
        "active_chats": db["chat"].count_documents({"participants": str(user["_id"])}),
        "pending_requests": random.randint(0, 4),
        "recent_activity": [
            {"id": 1, "type": "message", "user": "influencer1", "content": "Sent you a message", "time": (now - timedelta(minutes=5)).isoformat()},
            {"id": 2, "type": "connection", "user": "brandmanager", "content": "Connected with you", "time": (now - timedelta(hours=1)).isoformat()},
            {"id": 3, "type": "campaign", "user": "marketingteam", "content": "Invited you to a campaign", "time": (now - timedelta(hours=3)).isoformat()},
        ],
    }
