"""
MongoDB access for the storefront.

The connection is owned by a ``Database`` instance created at startup and
closed on shutdown; request handlers receive the pymongo database through the
``get_db`` dependency.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database as MongoDatabase

from errors import NotFound

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, url: str, name: str):
        self.url = url
        self.name = name
        self.client: Optional[MongoClient] = None
        self.db: Optional[MongoDatabase] = None

    def connect(self) -> MongoDatabase:
        self.client = MongoClient(self.url)
        self.db = self.client[self.name]
        logger.info("MongoDB connected: %s", self.name)
        return self.db

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None


def get_db(request: Request) -> MongoDatabase:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise RuntimeError("Database not configured")
    return db


def utcnow() -> datetime:
    # stored naive, in UTC, the way pymongo hands them back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Union[str, ObjectId]) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        raise NotFound("Resource not found")
    return ObjectId(value)


def create_document(db: MongoDatabase, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return _serialize_value(doc)


def ensure_indexes(db: MongoDatabase) -> None:
    db["user"].create_index("email", unique=True)
    db["cart"].create_index("user_id", unique=True)
    db["wishlist"].create_index("user_id", unique=True)
    db["order"].create_index("user_id")
    db["order"].create_index("order_status")
    db["order"].create_index("payment_intent_id")
    db["product"].create_index("name")
    db["product"].create_index([("category", ASCENDING), ("brand", ASCENDING)])
    db["product"].create_index("price")
    db["product"].create_index([("rating", DESCENDING)])
