"""
Database helpers

Thin layer over pymongo: connection handling, index setup and the generic
document helpers the stores build on.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config
from errors import ValidationFailure

log = logging.getLogger(__name__)

_client: Optional[MongoClient] = None

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def get_client() -> MongoClient:
    global _client
    if _client is None:
        log.info("Connecting to MongoDB database %s", config.DATABASE_NAME)
        _client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
    return _client


def get_db() -> Database:
    """FastAPI dependency returning the application database."""
    return get_client()[config.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db["product"].create_index([("product_id", ASCENDING)], unique=True)
    db["service"].create_index([("service_id", ASCENDING)], unique=True)
    db["order"].create_index([("order_number", ASCENDING)], unique=True)
    db["order"].create_index([("status", ASCENDING)])
    db["order"].create_index([("workflow_state", ASCENDING)])
    db["order_item"].create_index([("order_id", ASCENDING), ("position", ASCENDING)])
    db["order_item"].create_index([("item_id", ASCENDING)])


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection: str, data) -> str:
    """Insert a document stamped with created_at/updated_at, return its id."""
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = db[collection].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection: str, filter_dict: Optional[dict] = None) -> list:
    return list(db[collection].find(filter_dict or {}).sort(NEWEST_FIRST))


def to_str_id(doc: dict) -> dict:
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def ensure_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationFailure("Invalid ID format")
