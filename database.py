"""
MongoDB access for the storefront.

`db` is the shared database handle (None when DATABASE_URL/DATABASE_NAME are not set).
Route handlers receive it through the `get_db` dependency so tests can swap in another store.
"""
import os
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import InternalError, NotFound

logger = logging.getLogger("storefront.database")

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        logger.error("Database is not configured (DATABASE_URL / DATABASE_NAME)")
        raise InternalError("Database not available")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId], what: str = "Resource") -> ObjectId:
    """Parse an id from a path or body. Malformed ids are reported as not found."""
    if isinstance(value, ObjectId):
        return value
    if value is None:
        raise NotFound(f"{what} not found")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(f"{what} not found")


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database: Optional[Database] = None) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    target = database if database is not None else get_db()
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = now_utc()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = target[collection_name].insert_one(doc)
    return str(result.inserted_id)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a Mongo document JSON friendly: `_id` becomes `id`; ObjectIds and decimals become strings."""
    if doc is None:
        return None
    return {("id" if k == "_id" else k): _serialize_value(v) for k, v in doc.items()}


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["category"].create_index("name", unique=True)
    database["parameter"].create_index("name", unique=True)
    database["product"].create_index([("category", ASCENDING)])
    database["product"].create_index([("price", ASCENDING)])
    database["product"].create_index([("created_at", DESCENDING)])
    database["order"].create_index([("user", ASCENDING)])
    database["order"].create_index([("orderStatus", ASCENDING)])
    database["order"].create_index([("created_at", DESCENDING)])
