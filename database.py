"""
MongoDB access helpers.

The database handle is created once by ``connect`` and handed to the
application context; nothing here keeps module level connection state.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Database:
    # connect=False defers the first round trip until a query runs
    client = MongoClient(settings.database_url, tz_aware=True, connect=False)
    logger.info("Connecting to MongoDB database %s", settings.database_name)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("username", unique=True)
    db["user"].create_index("email", unique=True)
    db["chat"].create_index("participants")
    db["message"].create_index([("chat_id", ASCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)])


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None, sort: Optional[Sequence[Tuple[str, int]]] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_str_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace _id with a string id and render datetimes as ISO strings."""
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            d[k] = v.isoformat()
    return d
