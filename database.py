"""
MongoDB access.

The client is created lazily and handed to request handlers through the
``get_db`` dependency; services receive the database handle as an argument.
"""
import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config
from errors import InternalError, NotFound

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        if not config.DATABASE_URL:
            raise InternalError("Database not configured")
        _client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=config.DB_TIMEOUT_MS)
        logger.info("MongoDB client created for database %s", config.DATABASE_NAME)
    return _client


def get_db() -> Database:
    return get_client()[config.DATABASE_NAME]


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("email", unique=True)
    db["post"].create_index([("createdAt", DESCENDING)])
    db["post"].create_index("user")
    # One request per ordered pair; the reverse direction is checked by the service
    db["connectionrequest"].create_index([("sender", ASCENDING), ("receiver", ASCENDING)], unique=True)
    db["connectionrequest"].create_index([("receiver", ASCENDING), ("status", ASCENDING)])
    db["notification"].create_index([("recipient", ASCENDING), ("createdAt", DESCENDING)])


def parse_object_id(value: str, label: str = "Document") -> ObjectId:
    """Convert a path id to an ObjectId, treating malformed ids as missing."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(f"{label} not found")
