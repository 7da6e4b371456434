"""
MongoDB connection and small document helpers.

The connection is configured from DATABASE_URL and DATABASE_NAME. When they
are missing ``db`` stays ``None`` and routes report the database as not
configured.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the active database handle."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize(doc: Optional[dict]) -> Dict[str, Any]:
    """Replace the ObjectId ``_id`` with a string ``_id`` usable in JSON."""
    if not doc:
        return {}
    return {**{k: v for k, v in doc.items() if k != "_id"}, "_id": str(doc.get("_id"))}


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def ensure_indexes(database) -> None:
    """Create the unique natural-key indexes; safe to call repeatedly."""
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["payment"].create_index([("transactionId", ASCENDING)], unique=True)
    database["report"].create_index([("lessonId", ASCENDING)], unique=True)
    database["favorite"].create_index(
        [("lessonId", ASCENDING), ("userEmail", ASCENDING)], unique=True
    )
    database["lesson"].create_index([("authorEmail", ASCENDING)])
    database["comment"].create_index([("lessonId", ASCENDING)])
    logger.info("Indexes ensured on %s", database.name)
