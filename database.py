"""
MongoDB access for the storefront.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured. Route handlers
never touch it directly: they receive it through the `require_db` dependency so
tests can swap in another database with `app.dependency_overrides[get_db]`.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    return db


def require_db(database=Depends(get_db)):
    if database is None:
        raise HTTPException(500, "Database not configured")
    return database


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, sort=None, limit: Optional[int] = None):
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize_doc(doc) for doc in cursor]


def serialize_doc(doc, hidden=("password_hash",)):
    if doc is None:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    for key in hidden:
        doc.pop(key, None)
    return doc


def to_object_id(value: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(400, f"Invalid {label}")


def is_object_id(value: str) -> bool:
    return ObjectId.is_valid(str(value))


def find_by_id(database, collection_name: str, doc_id: str, label: str = "id"):
    return database[collection_name].find_one({"_id": to_object_id(doc_id, label)})


def ensure_indexes(database):
    """Unique constraints the handlers rely on; failures are logged, not fatal."""
    specs = [
        ("user", [("email", ASCENDING)]),
        ("coupon", [("code", ASCENDING)]),
        ("category", [("name", ASCENDING)]),
        ("subcategory", [("name", ASCENDING)]),
        ("cart", [("user_id", ASCENDING)]),
        ("wishlist", [("user_id", ASCENDING)]),
        ("rating", [("user_id", ASCENDING), ("product_id", ASCENDING), ("order_id", ASCENDING)]),
    ]
    for collection_name, keys in specs:
        try:
            database[collection_name].create_index(keys, unique=True)
        except PyMongoError as exc:
            logger.warning("Unable to ensure unique index on %s: %s", collection_name, exc)
