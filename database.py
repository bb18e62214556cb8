"""
Database Helper Functions

MongoDB helpers for the KeepUp API.
- connect() builds a pymongo Database from DATABASE_URL + DATABASE_NAME
- the Database is handed to the app explicitly and reaches handlers via get_db
"""

from datetime import datetime, timezone
from typing import Optional, Union
import logging
import os

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

# Load environment variables from .env file (noop if not present)
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "keepup"


def connect(database_url: Optional[str] = None, database_name: Optional[str] = None) -> Optional[Database]:
    """Connect to MongoDB and return the database, or None if unconfigured/unreachable"""
    database_url = database_url or os.getenv("DATABASE_URL")
    database_name = database_name or os.getenv("DATABASE_NAME") or DEFAULT_DATABASE_NAME

    if not database_url:
        logger.warning("DATABASE_URL is not set; running without a database")
        return None

    try:
        client = MongoClient(database_url, serverSelectionTimeoutMS=2000)
        client.admin.command("ping")  # ensure reachable now
    except PyMongoError as e:
        logger.error("Could not connect to MongoDB: %s", e)
        return None

    logger.info("Connected to MongoDB database %s", database_name)
    return client[database_name]


def ensure_indexes(db: Database):
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["post"].create_index([("created_at", ASCENDING)])
    db["comment"].create_index([("post_id", ASCENDING)])


def is_connected(db: Optional[Database]) -> bool:
    if db is None:
        return False
    try:
        db.command("ping")
        return True
    except PyMongoError:
        return False


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the database the app was built with"""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: Optional[str]) -> Optional[ObjectId]:
    """Parse an id string; None when it is not a valid ObjectId"""
    if not id_str:
        return None
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]):
    """Insert a single document with timestamps"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = now_utc()
    data_dict['created_at'] = now
    data_dict['updated_at'] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: dict | None = None,
                  limit: int | None = None, skip: int = 0, sort: list | None = None):
    """Get documents from a collection"""
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(db: Database, collection_name: str, id_str: Optional[str]):
    """Fetch one document by id string; None for unknown or malformed ids"""
    oid = to_object_id(id_str)
    if oid is None:
        return None
    return db[collection_name].find_one({"_id": oid})


def toggle_membership(db: Database, collection_name: str, doc_id: ObjectId, field: str, value: str) -> bool:
    """
    Add value to the array field if absent, remove it if present.

    Each branch is a single conditional update so the array never holds
    the value twice. Returns True when the value is now present.
    """
    now = now_utc()
    removed = db[collection_name].update_one(
        {"_id": doc_id, field: value},
        {"$pull": {field: value}, "$set": {"updated_at": now}},
    )
    if removed.modified_count:
        return False
    db[collection_name].update_one(
        {"_id": doc_id},
        {"$addToSet": {field: value}, "$set": {"updated_at": now}},
    )
    return True


def update_link(db: Database, op: str, first: tuple, second: tuple):
    """
    Apply `op` ($addToSet or $pull) to both sides of a two-way reference.

    Each side is (collection, document id, array field, value). The writes
    are separate; when the second one fails the first is undone and the
    error re-raised.
    """
    undo = "$pull" if op == "$addToSet" else "$addToSet"
    now = now_utc()
    collection, doc_id, field, value = first
    # Only match when the write changes membership, so modified_count says whether to undo
    guard = {"$ne": value} if op == "$addToSet" else value
    result = db[collection].update_one(
        {"_id": doc_id, field: guard}, {op: {field: value}, "$set": {"updated_at": now}}
    )
    try:
        other_collection, other_id, other_field, other_value = second
        db[other_collection].update_one(
            {"_id": other_id}, {op: {other_field: other_value}, "$set": {"updated_at": now}}
        )
    except PyMongoError:
        logger.exception("Second write of %s on %s/%s failed, reverting %s/%s",
                         op, other_collection, other_id, collection, doc_id)
        if result.modified_count:
            db[collection].update_one({"_id": doc_id}, {undo: {field: value}})
        raise


def to_public(doc: dict):
    """Mongo document -> JSON-friendly dict with `id` and no password"""
    if not doc:
        return doc
    d = {**doc}
    _id = d.pop("_id", None)
    if isinstance(_id, ObjectId):
        d["id"] = str(_id)
    d.pop("password", None)
    return d
