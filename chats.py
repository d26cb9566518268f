"""
Two-party chats and their messages.

A chat's document id is derived from its participants, so either user can
find the same thread without a lookup table. Sending a message writes the
message and then the chat's denormalized preview; when the preview write
fails the message is removed again, so a send is all or nothing.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, to_str_id
from errors import ChatNotFound, NotParticipant, ValidationFailed
from schemas import Chat as ChatSchema, Message as MessageSchema
from validation import validate_message_content

logger = logging.getLogger(__name__)

CHAT_PREFIX = "chat"
SEPARATOR = "_"


def derive_chat_id(user_a: str, user_b: str) -> str:
    low, high = sorted([str(user_a), str(user_b)])
    return SEPARATOR.join([CHAT_PREFIX, low, high])


def get_or_create_chat(db: Database, user_a: str, user_b: str) -> Dict[str, Any]:
    chat_id = derive_chat_id(user_a, user_b)
    now = datetime.now(timezone.utc)
    chat = ChatSchema(participants=sorted([str(user_a), str(user_b)]))
    # $setOnInsert leaves an existing chat untouched
    result = db["chat"].update_one(
        {"_id": chat_id},
        {"$setOnInsert": dict(chat.model_dump(), created_at=now, updated_at=now)},
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("Created chat %s", chat_id)
    return db["chat"].find_one({"_id": chat_id})


def get_chat(db: Database, chat_id: str) -> Optional[Dict[str, Any]]:
    return db["chat"].find_one({"_id": chat_id})


def require_participant(db: Database, chat_id: str, user_id: str) -> Dict[str, Any]:
    chat = get_chat(db, chat_id)
    if not chat:
        raise ChatNotFound()
    if str(user_id) not in chat.get("participants", []):
        raise NotParticipant()
    return chat


def list_chats(db: Database, user_id: str) -> List[Dict[str, Any]]:
    chats = get_documents(db, "chat", {"participants": str(user_id)}, sort=[("last_message_at", DESCENDING), ("created_at", DESCENDING)])
    return [to_str_id(c) for c in chats]


def list_messages(db: Database, chat_id: str) -> List[Dict[str, Any]]:
    msgs = get_documents(db, "message", {"chat_id": chat_id}, sort=[("created_at", ASCENDING), ("_id", ASCENDING)])
    return [to_str_id(m) for m in msgs]


def send_message(db: Database, chat_id: str, sender_id: str, content: Optional[str], receiver_id: Optional[str] = None) -> Dict[str, Any]:
    result = validate_message_content(content)
    if not result.ok:
        raise ValidationFailed(result)

    sender_id = str(sender_id)
    chat = require_participant(db, chat_id, sender_id)
    other = [p for p in chat["participants"] if p != sender_id]
    expected_receiver = other[0] if other else sender_id
    if receiver_id is not None and str(receiver_id) != expected_receiver:
        raise NotParticipant("Receiver is not the other participant of this chat")

    msg = MessageSchema(chat_id=chat_id, sender_id=sender_id, receiver_id=expected_receiver, content=content.strip())
    msg_id = create_document(db, "message", msg)
    doc = db["message"].find_one({"_id": ObjectId(msg_id)})

    try:
        db["chat"].update_one({"_id": chat_id}, {"$set": {
            "last_message": doc["content"],
            "last_message_at": doc["created_at"],
            "last_sender_id": sender_id,
            "updated_at": doc["created_at"],
        }})
    except PyMongoError:
        logger.exception("Preview update failed for chat %s, removing message %s", chat_id, msg_id)
        db["message"].delete_one({"_id": doc["_id"]})
        raise

    logger.info("Message %s sent in %s by %s", msg_id, chat_id, sender_id)
    return to_str_id(doc)
