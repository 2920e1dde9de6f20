"""
MongoDB access helpers.

The client is created once at application startup and the selected database is kept
on ``app.state.db``; request handlers receive it through the ``get_db`` dependency.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from errors import DatabaseUnavailableError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# (collection, keys, unique)
INDEXES = [
    ("user", [("username", ASCENDING)], True),
    ("user", [("email", ASCENDING)], True),
    ("course", [("enrollment_key", ASCENDING)], True),
    ("course", [("instructor_id", ASCENDING)], False),
    ("enrollment", [("course_id", ASCENDING), ("student_id", ASCENDING)], True),
    ("enrollment", [("student_id", ASCENDING)], False),
    ("assignment", [("course_id", ASCENDING)], False),
    ("submission", [("assignment_id", ASCENDING), ("student_id", ASCENDING)], True),
    ("grade", [("assignment_id", ASCENDING), ("student_id", ASCENDING)], True),
    ("announcement", [("course_id", ASCENDING)], False),
]


def connect(url: str, name: str) -> Database:
    client = MongoClient(url, serverSelectionTimeoutMS=10000, socketTimeoutMS=45000)
    logger.info(f"Connected to MongoDB database '{name}'")
    return client[name]


def init_database(db: Database) -> None:
    """Create the collections' indexes. Safe to call repeatedly."""
    for collection, keys, unique in INDEXES:
        db[collection].create_index(keys, unique=unique)
    logger.info(f"Ensured {len(INDEXES)} indexes")


def get_db(request: Request) -> Database:
    """Database dependency for FastAPI"""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise DatabaseUnavailableError()
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Mongo hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id format", details={"id": id_str})


def serialize_doc(doc: Optional[Dict[str, Any]], exclude: tuple = ("password_hash",)) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {k: v for k, v in doc.items() if k not in exclude}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            d[k] = as_utc(v).isoformat()
        elif isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document with timestamps and return it including its ``_id``."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    res = db[collection_name].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort: Optional[List] = None, skip: int = 0, limit: int = 0) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(db: Database, collection_name: str, id_str: str, entity: str) -> Dict[str, Any]:
    doc = db[collection_name].find_one({"_id": oid(id_str)})
    if not doc:
        raise NotFoundError(entity, id_str)
    return doc


def update_document(db: Database, collection_name: str, _id: ObjectId, changes: Dict[str, Any]) -> Dict[str, Any]:
    changes = {**changes, "updated_at": utcnow()}
    db[collection_name].update_one({"_id": _id}, {"$set": changes})
    return db[collection_name].find_one({"_id": _id})
