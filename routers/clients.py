import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from database import (
    create_document,
    get_db,
    get_or_404,
    optional_object_id,
    populate_many,
    to_public_id,
    update_document,
)
from hooks import ROLE_ORDER, status_display
from pagination import PageParams, contains, page_params, paginate, search_filter
from schemas import Client, ClientIn, ClientStatus, ClientType, ClientUpdate, LeadSource, RoleName
from security import current_user_oid, get_current_user, require_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["clients"])

USER_FIELDS = ("name", "email")


def client_views(db: Database, docs: List[Dict[str, Any]], user_fields=USER_FIELDS) -> List[Dict[str, Any]]:
    populate_many(db, docs, "assigned_to", "user", user_fields)
    for doc in docs:
        doc["status_display"] = status_display(doc)
    return [to_public_id(d) for d in docs]


def check_unique_contact(db: Database, email: Optional[str], phone: Optional[str], exclude: Optional[ObjectId] = None):
    """Email and phone are unique across clients."""
    not_self = {"_id": {"$ne": exclude}} if exclude else {}
    if email and db["client"].find_one({"email": email.lower(), **not_self}):
        raise HTTPException(400, detail="A client with this email already exists")
    if phone and db["client"].find_one({"phone": phone, **not_self}):
        raise HTTPException(400, detail="A client with this phone number already exists")


def insert_client(db: Database, data: Dict[str, Any], assigned_to: Optional[ObjectId]) -> Dict[str, Any]:
    client = Client(**data)
    doc = client.model_dump()
    doc["email"] = doc["email"].lower()
    doc["assigned_to"] = optional_object_id(client.assigned_to) or assigned_to
    check_unique_contact(db, doc["email"], doc["phone"])
    created = create_document(db, "client", doc)
    logger.info("Client %s created", created["_id"])
    return created


@router.get("")
def list_clients(
    type: Optional[ClientType] = None,
    status: Optional[ClientStatus] = None,
    role: Optional[RoleName] = None,
    lead_source: Optional[LeadSource] = None,
    location: Optional[str] = None,
    tag: Optional[str] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1),
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {}
    if type:
        filter_dict["type"] = type
    if status:
        filter_dict["status"] = status
    if role:
        filter_dict["active_roles"] = role
    if lead_source:
        filter_dict["lead_source"] = lead_source
    if location:
        filter_dict["location"] = contains(location)
    if tag:
        filter_dict["tags"] = tag
    if assigned_to and ObjectId.is_valid(assigned_to):
        filter_dict["assigned_to"] = ObjectId(assigned_to)
    if search:
        filter_dict.update(search_filter(search, ["name", "email", "phone"]))

    docs, meta = paginate(db["client"], filter_dict, params)
    return {"clients": client_views(db, docs), "pagination": meta}


@router.get("/stats/overview")
def client_stats(db: Database = Depends(get_db), _=Depends(get_current_user)):
    collection = db["client"]
    by_type = list(collection.aggregate([{"$group": {"_id": "$type", "count": {"$sum": 1}}}]))
    by_source = list(collection.aggregate([{"$group": {"_id": "$lead_source", "count": {"$sum": 1}}}]))
    total = collection.count_documents({})
    active = collection.count_documents({"status": "active"})
    return {
        "overview": {
            "total_clients": total,
            "active_clients": active,
            "inactive_clients": total - active,
        },
        "by_type": by_type,
        "by_lead_source": by_source,
        "by_role": [
            {"_id": role, "count": collection.count_documents({"active_roles": role})}
            for role in ROLE_ORDER
        ],
    }


@router.get("/{client_id}")
def get_client(client_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    doc = get_or_404(db, "client", client_id, "Client")
    return {"client": client_views(db, [doc], ("name", "email", "phone"))[0]}


@router.post("", status_code=201)
def create_client(body: ClientIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    doc = insert_client(db, body.model_dump(), current_user_oid(user))
    return {"message": "Client created successfully", "client": client_views(db, [doc])[0]}


@router.put("/{client_id}")
def update_client(
    client_id: str, body: ClientUpdate, db: Database = Depends(get_db), _=Depends(get_current_user)
):
    existing = get_or_404(db, "client", client_id, "Client")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("email"):
        changes["email"] = changes["email"].lower()
    check_unique_contact(db, changes.get("email"), changes.get("phone"), exclude=existing["_id"])
    if "assigned_to" in changes:
        changes["assigned_to"] = optional_object_id(changes["assigned_to"])
    doc = update_document(db, "client", existing["_id"], changes)
    return {"message": "Client updated successfully", "client": client_views(db, [doc])[0]}


@router.delete("/{client_id}")
def delete_client(
    client_id: str, db: Database = Depends(get_db), _=Depends(require_role(["admin", "manager"]))
):
    existing = get_or_404(db, "client", client_id, "Client")
    roles = db["clientrole"].delete_many({"client_id": existing["_id"]}).deleted_count
    lookouts = db["lookout"].delete_many({"client_id": existing["_id"]}).deleted_count
    db["client"].delete_one({"_id": existing["_id"]})
    logger.info("Client %s deleted with %s roles and %s lookouts", existing["_id"], roles, lookouts)
    return {"message": "Client deleted successfully"}
