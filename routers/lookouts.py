import logging
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from database import (
    create_document,
    get_db,
    get_documents,
    get_or_404,
    optional_object_id,
    parse_object_id,
    populate_many,
    to_public_id,
    update_document,
)
from hooks import area_display, budget_display
from pagination import PageParams, page_params, paginate, search_filter
from routers.properties import property_views
from schemas import Lookout, LookoutIn, LookoutStatus, LookoutUpdate, Priority
from security import current_user_oid, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lookouts", tags=["lookouts"])


def lookout_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    populate_many(db, docs, "client_id", "client", ("name", "email", "phone"))
    populate_many(db, docs, "assigned_to", "user", ("name", "email"))
    for doc in docs:
        doc["budget_display"] = budget_display(doc.get("budget"))
        doc["area_display"] = area_display(doc.get("area"))
    return [to_public_id(d) for d in docs]


def _bounds(field: str, bounds: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    bounds = bounds or {}
    condition = {}
    if bounds.get("min"):
        condition["$gte"] = bounds["min"]
    if bounds.get("max"):
        condition["$lte"] = bounds["max"]
    return {field: condition} if condition else {}


def match_filter(lookout: Dict[str, Any]) -> Dict[str, Any]:
    """Active, available properties fitting the lookout's types, cities, budget and area."""
    filter_dict: Dict[str, Any] = {"is_active": True, "status": "Available"}
    if lookout.get("property_types"):
        filter_dict["type"] = {"$in": lookout["property_types"]}
    if lookout.get("cities"):
        filter_dict["$or"] = [
            {"city": {"$regex": f"^{re.escape(city)}$", "$options": "i"}} for city in lookout["cities"]
        ]
    filter_dict.update(_bounds("total_price", lookout.get("budget")))
    filter_dict.update(_bounds("area", lookout.get("area")))
    return filter_dict


@router.get("")
def list_lookouts(
    client_id: Optional[str] = None,
    status: Optional[LookoutStatus] = None,
    priority: Optional[Priority] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1),
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {}
    if client_id and ObjectId.is_valid(client_id):
        filter_dict["client_id"] = ObjectId(client_id)
    if status:
        filter_dict["status"] = status
    if priority:
        filter_dict["priority"] = priority
    if assigned_to and ObjectId.is_valid(assigned_to):
        filter_dict["assigned_to"] = ObjectId(assigned_to)
    if search:
        clients = db["client"].find(search_filter(search, ["name", "email"]), {"_id": 1})
        text = search_filter(search, ["title", "requirements"])
        text["$or"].append({"client_id": {"$in": [c["_id"] for c in clients]}})
        filter_dict.update(text)

    docs, meta = paginate(db["lookout"], filter_dict, params)
    return {"lookouts": lookout_views(db, docs), "pagination": meta}


@router.get("/stats/overview")
def lookout_stats(db: Database = Depends(get_db), _=Depends(get_current_user)):
    collection = db["lookout"]
    return {
        "overview": {
            "total_lookouts": collection.count_documents({}),
            "active_lookouts": collection.count_documents({"status": "active"}),
            "on_hold_lookouts": collection.count_documents({"status": "on-hold"}),
            "completed_lookouts": collection.count_documents({"status": "completed"}),
            "urgent_lookouts": collection.count_documents({"priority": "urgent"}),
        },
        "by_priority": list(collection.aggregate([{"$group": {"_id": "$priority", "count": {"$sum": 1}}}])),
        "by_status": list(collection.aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])),
    }


@router.get("/client/{client_id}")
def lookouts_for_client(client_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    oid = parse_object_id(client_id, "Client")
    docs = get_documents(db, "lookout", {"client_id": oid}, sort=[("created_at", -1)])
    return {"lookouts": lookout_views(db, docs)}


@router.get("/{lookout_id}")
def get_lookout(lookout_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    doc = get_or_404(db, "lookout", lookout_id, "Lookout")
    return {"lookout": lookout_views(db, [doc])[0]}


@router.get("/{lookout_id}/matches")
def lookout_matches(
    lookout_id: str,
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    lookout = get_or_404(db, "lookout", lookout_id, "Lookout")
    docs, meta = paginate(db["property"], match_filter(lookout), params)
    return {"properties": property_views(db, docs), "pagination": meta}


@router.post("", status_code=201)
def create_lookout(body: LookoutIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    client = get_or_404(db, "client", body.client_id, "Client")
    doc = Lookout(**body.model_dump()).model_dump()
    doc["client_id"] = client["_id"]
    doc["assigned_to"] = optional_object_id(body.assigned_to) or current_user_oid(user)
    created = create_document(db, "lookout", doc)
    logger.info("Lookout %s created for client %s", created["_id"], client["_id"])
    return {"message": "Lookout created successfully", "lookout": lookout_views(db, [created])[0]}


@router.put("/{lookout_id}")
def update_lookout(
    lookout_id: str, body: LookoutUpdate, db: Database = Depends(get_db), _=Depends(get_current_user)
):
    existing = get_or_404(db, "lookout", lookout_id, "Lookout")
    changes = body.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        changes["assigned_to"] = optional_object_id(changes["assigned_to"])
    doc = update_document(db, "lookout", existing["_id"], changes)
    return {"message": "Lookout updated successfully", "lookout": lookout_views(db, [doc])[0]}


@router.delete("/{lookout_id}")
def delete_lookout(lookout_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    existing = get_or_404(db, "lookout", lookout_id, "Lookout")
    db["lookout"].delete_one({"_id": existing["_id"]})
    logger.info("Lookout %s deleted", existing["_id"])
    return {"message": "Lookout deleted successfully"}
