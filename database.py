"""
MongoDB access helpers.

Collections are named after the lowercase schema class in ``schemas.py``
(e.g. ClientRole -> "clientrole"). Documents are plain dicts; the helpers
here stamp timestamps, resolve references and turn documents into
JSON-ready dicts.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------
# CRUD helpers
# ----------------------------

def create_document(database: Database, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(data)
    stamp = now_utc()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    inserted = database[collection].insert_one(doc)
    doc["_id"] = inserted.inserted_id
    return doc


def get_documents(
    database: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(
    database: Database, collection: str, doc_id: ObjectId, changes: Dict[str, Any]
) -> Optional[Dict[str, Any]]:
    changes = dict(changes)
    changes["updated_at"] = now_utc()
    return database[collection].find_one_and_update(
        {"_id": doc_id},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


# ----------------------------
# Ids
# ----------------------------

def parse_object_id(value: Any, entity: str = "Document") -> ObjectId:
    """Parse a path id; malformed ids are reported as missing documents."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(404, detail=f"{entity} not found")


def optional_object_id(value: Optional[str]) -> Optional[ObjectId]:
    return ObjectId(value) if value else None


def get_or_404(database: Database, collection: str, doc_id: Any, entity: str) -> Dict[str, Any]:
    doc = database[collection].find_one({"_id": parse_object_id(doc_id, entity)})
    if doc is None:
        raise HTTPException(404, detail=f"{entity} not found")
    return doc


# ----------------------------
# Serialization
# ----------------------------

def _public(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return to_public_id(value)
    if isinstance(value, list):
        return [_public(v) for v in value]
    return value


def to_public_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = {}
    for key, value in doc.items():
        if key == "_id":
            d["id"] = str(value)
        else:
            d[key] = _public(value)
    return d


# ----------------------------
# References
# ----------------------------

def populate_many(
    database: Database,
    docs: List[Dict[str, Any]],
    field: str,
    collection: str,
    fields: Iterable[str],
    into: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Resolve the reference stored in ``field`` for every document with a single
    ``$in`` query. ``client_id`` populates into ``client``; fields without the
    ``_id`` suffix are replaced in place. Dangling references become None.
    """
    target = into or (field[:-3] if field.endswith("_id") else field)
    ids = {doc.get(field) for doc in docs if isinstance(doc.get(field), ObjectId)}
    projection = {name: 1 for name in fields}
    found = {}
    if ids:
        for ref in database[collection].find({"_id": {"$in": list(ids)}}, projection):
            found[ref["_id"]] = ref
    for doc in docs:
        ref_id = doc.get(field)
        if isinstance(ref_id, ObjectId):
            doc[target] = found.get(ref_id)
        elif field not in doc or ref_id is None:
            doc[target] = None
    return docs


def populate_list(
    database: Database, doc: Dict[str, Any], field: str, collection: str, fields: Iterable[str]
) -> Dict[str, Any]:
    """Replace a list of reference ids with the referenced documents, keeping order."""
    ids = [v for v in doc.get(field) or [] if isinstance(v, ObjectId)]
    projection = {name: 1 for name in fields}
    found = {ref["_id"]: ref for ref in database[collection].find({"_id": {"$in": ids}}, projection)}
    doc[field] = [found[i] for i in ids if i in found]
    return doc


# ----------------------------
# Indexes
# ----------------------------

def ensure_indexes(database: Database) -> None:
    logger.info("Ensuring database indexes")
    database["client"].create_index([("email", ASCENDING)], unique=True)
    database["client"].create_index([("phone", ASCENDING)], unique=True)
    database["client"].create_index([("type", ASCENDING), ("status", ASCENDING)])
    database["client"].create_index([("assigned_to", ASCENDING)])
    database["client"].create_index([("active_roles", ASCENDING)])
    database["client"].create_index([("created_at", DESCENDING)])

    database["clientrole"].create_index(
        [("client_id", ASCENDING), ("role", ASCENDING), ("property_id", ASCENDING)],
        unique=True,
    )
    database["clientrole"].create_index([("role", ASCENDING), ("status", ASCENDING)])

    database["property"].create_index([("city", ASCENDING), ("status", ASCENDING)])
    database["property"].create_index([("owner", ASCENDING)])
    database["property"].create_index([("created_at", DESCENDING)])

    database["referral"].create_index([("referred_by_client_id", ASCENDING)])
    database["referral"].create_index([("parent_referral_id", ASCENDING)])
    database["referral"].create_index([("status", ASCENDING)])

    database["lookout"].create_index([("client_id", ASCENDING), ("status", ASCENDING)])
    database["lookout"].create_index([("status", ASCENDING), ("priority", ASCENDING)])

    database["message"].create_index([("thread", ASCENDING), ("created_at", ASCENDING)])
    database["user"].create_index([("email", ASCENDING)], unique=True)
    logger.info("Database indexes ready")
