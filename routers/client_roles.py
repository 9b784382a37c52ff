import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

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
from hooks import commission_display, sync_client_roles
from pagination import PageParams, page_params, paginate, search_filter
from schemas import ClientRole, ClientRoleIn, ClientRoleUpdate, RoleName, RoleStatus
from security import current_user_oid, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/client-roles", tags=["client-roles"])

CLIENT_FIELDS = ("name", "email", "phone", "type", "status")
PROPERTY_FIELDS = ("title", "city", "total_price")
USER_FIELDS = ("name", "email")


def role_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    populate_many(db, docs, "client_id", "client", CLIENT_FIELDS)
    populate_many(db, docs, "property_id", "property", PROPERTY_FIELDS)
    populate_many(db, docs, "assigned_to", "user", USER_FIELDS)
    for doc in docs:
        doc["commission_display"] = commission_display(doc.get("commission"), hide_zero=True)
    return [to_public_id(d) for d in docs]


def add_role(
    db: Database,
    client_id: ObjectId,
    role: str,
    property_id: Optional[ObjectId],
    assigned_to: Optional[ObjectId],
    **fields,
) -> Dict[str, Any]:
    """Insert a client role and recompute the client's status."""
    if db["clientrole"].find_one({"client_id": client_id, "role": role, "property_id": property_id}):
        raise HTTPException(400, detail=f"Client already has {role} role for this property")
    data = ClientRole(client_id=str(client_id), role=role, **fields).model_dump()
    data.update(client_id=client_id, property_id=property_id, assigned_to=assigned_to)
    try:
        doc = create_document(db, "clientrole", data)
    except DuplicateKeyError:
        raise HTTPException(400, detail="Client role already exists for this combination")
    logger.info("Client role %s (%s) created for client %s", doc["_id"], role, client_id)
    sync_client_roles(db, client_id)
    return doc


@router.get("")
def list_client_roles(
    role: Optional[RoleName] = None,
    status: Optional[RoleStatus] = None,
    client_id: Optional[str] = None,
    property_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1),
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {}
    if role:
        filter_dict["role"] = role
    if status:
        filter_dict["status"] = status
    if client_id and ObjectId.is_valid(client_id):
        filter_dict["client_id"] = ObjectId(client_id)
    if property_id and ObjectId.is_valid(property_id):
        filter_dict["property_id"] = ObjectId(property_id)
    if assigned_to and ObjectId.is_valid(assigned_to):
        filter_dict["assigned_to"] = ObjectId(assigned_to)
    if search:
        matches = db["client"].find(search_filter(search, ["name", "email", "phone"]), {"_id": 1})
        filter_dict["client_id"] = {"$in": [c["_id"] for c in matches]}

    docs, meta = paginate(db["clientrole"], filter_dict, params)
    return {"client_roles": role_views(db, docs), "pagination": meta}


@router.get("/client/{client_id}")
def roles_for_client(client_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    oid = parse_object_id(client_id, "Client")
    docs = get_documents(db, "clientrole", {"client_id": oid}, sort=[("created_at", -1)])
    return {"client_roles": role_views(db, docs)}


@router.get("/property/{property_id}")
def roles_for_property(property_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    oid = parse_object_id(property_id, "Property")
    docs = get_documents(db, "clientrole", {"property_id": oid}, sort=[("created_at", -1)])
    return {"client_roles": role_views(db, docs)}


@router.get("/{role_id}")
def get_client_role(role_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    doc = get_or_404(db, "clientrole", role_id, "Client role")
    return {"client_role": role_views(db, [doc])[0]}


@router.post("", status_code=201)
def create_client_role(body: ClientRoleIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    client = get_or_404(db, "client", body.client_id, "Client")
    property_id = None
    if body.property_id:
        property_id = get_or_404(db, "property", body.property_id, "Property")["_id"]

    doc = add_role(
        db,
        client["_id"],
        body.role,
        property_id,
        optional_object_id(body.assigned_to) or current_user_oid(user),
        status=body.status,
        commission=body.commission.model_dump(),
        relationship_note=body.relationship_note,
        notes=body.notes,
    )
    return {"message": "Client role created successfully", "client_role": role_views(db, [doc])[0]}


@router.put("/{role_id}")
def update_client_role(
    role_id: str, body: ClientRoleUpdate, db: Database = Depends(get_db), _=Depends(get_current_user)
):
    existing = get_or_404(db, "clientrole", role_id, "Client role")
    changes = body.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        changes["assigned_to"] = optional_object_id(changes["assigned_to"])
    doc = update_document(db, "clientrole", existing["_id"], changes)
    sync_client_roles(db, existing["client_id"])
    return {"message": "Client role updated successfully", "client_role": role_views(db, [doc])[0]}


@router.delete("/{role_id}")
def delete_client_role(role_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    existing = get_or_404(db, "clientrole", role_id, "Client role")
    db["clientrole"].delete_one({"_id": existing["_id"]})
    logger.info("Client role %s deleted", existing["_id"])
    sync_client_roles(db, existing["client_id"])
    return {"message": "Client role deleted successfully"}
