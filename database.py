"""
MongoDB access for the shop orders API.

The client is created by ``connect`` during application startup and released
by ``close`` on shutdown; request handlers receive the database handle through
the ``get_db`` dependency in ``main``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from logger import get_logger

_logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def connect(uri: str) -> MongoClient:
    client = MongoClient(uri, tz_aware=True)
    client.admin.command("ping")
    _logger.info("Connected to MongoDB")
    return client


def get_database(client: MongoClient, database_name: str) -> Database:
    """Database named in the URI, or ``database_name`` when it names none."""
    return client.get_default_database(default=database_name)


def close(client: Optional[MongoClient]) -> None:
    if client is not None:
        client.close()
        _logger.info("MongoDB connection closed")


def ensure_indexes(db: Database) -> None:
    db["shop"].create_index([("name", ASCENDING)])
    db["product"].create_index([("shop_id", ASCENDING), ("created_at", DESCENDING)])
    db["product"].create_index([("shop_id", ASCENDING), ("price_cents", ASCENDING)])
    db["customer"].create_index(
        [("email", ASCENDING), ("phone", ASCENDING)], unique=True
    )
    db["order"].create_index(
        [
            ("customer.email", ASCENDING),
            ("customer.phone", ASCENDING),
            ("created_at", DESCENDING),
        ]
    )
    db["order"].create_index([("shop_id", ASCENDING), ("created_at", DESCENDING)])
    db["order"].create_index([("status", ASCENDING)])
    db["order"].create_index([("customer_time_zone", ASCENDING)])
    _logger.debug("Indexes ensured")


def to_object_id(value: Union[str, ObjectId]) -> ObjectId:
    return value if isinstance(value, ObjectId) else ObjectId(value)


def to_object_ids(values: Iterable[Union[str, ObjectId]]) -> List[ObjectId]:
    return [to_object_id(v) for v in values]


# Fields stored as ObjectId references rather than strings.
_REFERENCE_FIELDS = ("shop_id", "product_id")


def _store_references(doc: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in doc.items():
        if key in _REFERENCE_FIELDS and isinstance(value, str):
            doc[key] = ObjectId(value)
        elif isinstance(value, dict):
            _store_references(value)
        elif isinstance(value, list):
            for entry in value:
                if isinstance(entry, dict):
                    _store_references(entry)
    return doc


def create_document(
    db: Database,
    collection_name: str,
    data: Union[BaseModel, Dict[str, Any]],
    session=None,
) -> str:
    """Insert a document with created/updated timestamps and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = dict(data)
    _store_references(data_dict)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    projection: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    limit: Optional[int] = None,
    session=None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}, projection, session=session)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
