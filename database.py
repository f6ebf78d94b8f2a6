"""
MongoDB access for the hotel booking service.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing ``db`` stays None and every request that needs storage fails with a
server error.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_url and settings.database_name:
    _client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    db = _client[settings.database_name]
    logger.info(f"MongoDB client configured for database '{settings.database_name}'")
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set, database unavailable")


def utcnow() -> datetime:
    # Naive UTC at BSON's millisecond precision, matching what pymongo hands back on reads
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    if db is None:
        logger.error("Database requested but not configured")
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("username", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["admin"].create_index([("username", ASCENDING)], unique=True)
    database["session"].create_index([("token", ASCENDING)], unique=True)
    database["booking"].create_index([("roomType", ASCENDING), ("status", ASCENDING)])
    database["booking"].create_index([("createdAt", ASCENDING)])


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document stamped with createdAt/updatedAt and return it with its _id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = data.copy()
    now = utcnow()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    result = database[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Fetch documents newest first."""
    cursor = database[collection_name].find(filter_dict or {}).sort([("createdAt", -1), ("_id", -1)])
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
