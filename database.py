"""
MongoDB access helpers.

The client is built once from DATABASE_URL / DATABASE_NAME. Routes receive the
database through the ``get_db`` dependency so tests can swap it out.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config
from errors import UnexpectedError, ValidationError

logger = logging.getLogger(__name__)

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db():
    if db is None:
        raise UnexpectedError("Database not available")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a document stamped with created_at/updated_at and return it with its _id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now_utc()
    doc["created_at"] = stamp
    doc["updated_at"] = stamp
    result = database[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort=None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value)


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    if not is_object_id(value):
        raise ValidationError(f"Invalid {label}")
    return ObjectId(value)


def serialize_doc(doc):
    """Make a Mongo document JSON friendly: _id -> id, ObjectId -> str, datetime -> ISO."""
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        if doc.tzinfo is None:
            doc = doc.replace(tzinfo=timezone.utc)
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = serialize_doc(v)
        else:
            out[k] = serialize_doc(v)
    return out


def _to_int(value, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_pagination(page, limit, default_limit: int, max_limit: int) -> Tuple[int, int]:
    """Clamp raw query values: page >= 1, 1 <= limit <= max_limit. Garbage falls back to defaults."""
    page = max(1, _to_int(page, 1))
    limit = max(1, min(max_limit, _to_int(limit, default_limit)))
    return page, limit


DEFAULT_SORT = [("created_at", -1), ("_id", -1)]


def paginate(collection, filter_dict: dict, page: int, limit: int,
             sort=None) -> Tuple[List[dict], int]:
    # count and page are independent reads; they may disagree under concurrent writes
    skip = (page - 1) * limit
    docs = list(collection.find(filter_dict).sort(sort or DEFAULT_SORT).skip(skip).limit(limit))
    total = collection.count_documents(filter_dict)
    return docs, total


def ensure_indexes(database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["user"].create_index([("number", ASCENDING)], unique=True)
    database["category"].create_index([("keywords", ASCENDING)], unique=True)
    database["plant"].create_index([("name", ASCENDING)])
    database["plant"].create_index([("categories", ASCENDING)])
    database["plant"].create_index([("available", ASCENDING)])
    database["order"].create_index([("user", ASCENDING), ("created_at", -1)])
    database["contact"].create_index([("status", ASCENDING), ("created_at", -1)])
    logger.info("Indexes ensured on %s", database.name)
