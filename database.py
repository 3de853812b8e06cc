"""
MongoDB access helpers.

``db`` is the module-level database handle (``None`` when DATABASE_URL /
DATABASE_NAME are not configured). Routes receive it through the ``get_db``
dependency so tests can swap in an in-memory database.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from errors import DatabaseUnavailable, DuplicateKey, ValidationFailure

logger = logging.getLogger(__name__)

db: Optional[Database] = None
if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise DatabaseUnavailable()
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert ``data`` with created/updated timestamps and return the stored document."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any, label: str = "object") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationFailure(f"Invalid {label} id")
    return ObjectId(value)


def serialize(value: Any) -> Any:
    """Make a stored document JSON friendly: ``_id`` becomes ``id`` and ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {("id" if k == "_id" else k): serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


@contextmanager
def duplicate_guard(message: str):
    """Translate unique index violations into a ``DuplicateKey`` error."""
    try:
        yield
    except DuplicateKeyError:
        raise DuplicateKey(message)


def ensure_indexes(database: Database) -> None:
    database["brand"].create_index("name", unique=True)
    database["brand"].create_index("dashed_name", unique=True, sparse=True)
    database["category"].create_index("name", unique=True)
    database["category"].create_index("dashed_name", unique=True, sparse=True)
    database["subcategory"].create_index("category")
    database["subcategory"].create_index("dashed_name")
    database["product"].create_index("sku", unique=True)
    database["product"].create_index("dashed_name")
    database["product"].create_index("brand")
    database["product"].create_index("category")
    database["product"].create_index("sub_category")
    database["priority"].create_index([("type", ASCENDING), ("object_id", ASCENDING)], unique=True)
    database["enquiry"].create_index("enquiry_number", unique=True)
    database["enquiry"].create_index([("created_at", DESCENDING)])
    database["page"].create_index("title", unique=True)
    database["page"].create_index("slug", unique=True)
    database["user"].create_index("email", unique=True)
    logger.info("MongoDB indexes ensured on %s", database.name)
