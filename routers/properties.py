import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pymongo.database import Database

from database import (
    create_document,
    get_db,
    get_or_404,
    now_utc,
    optional_object_id,
    populate_many,
    to_public_id,
    update_document,
)
from hooks import age_display, sync_client_roles, total_price
from pagination import PageParams, contains, page_params, paginate, search_filter
from routers.client_roles import add_role
from routers.clients import check_unique_contact, insert_client
from routers.uploads import save_upload
from schemas import Contact, PropertyIn, PropertyStatus, PropertyType, PropertyUpdate, Zoning
from security import current_user_oid, get_current_user
from storage import DriveClient, get_drive

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/properties", tags=["properties"])

CLIENT_FIELDS = ("name", "email", "phone")


def property_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    populate_many(db, docs, "owner", "client", CLIENT_FIELDS)
    populate_many(db, docs, "ref", "client", CLIENT_FIELDS)
    populate_many(db, docs, "created_by", "user", ("name",))
    populate_many(db, docs, "assigned_to", "user", ("name",))
    for doc in docs:
        doc["age_display"] = age_display(doc.get("age"))
    return [to_public_id(d) for d in docs]


def get_property_or_404(db: Database, property_id: str) -> Dict[str, Any]:
    doc = get_or_404(db, "property", property_id, "Property")
    if not doc.get("is_active", True):
        raise HTTPException(404, detail="Property not found")
    return doc


def check_parties(db: Database, body: PropertyIn) -> None:
    """Validate owner and ref before any client is written."""
    parties = [(body.owner, "Owner client")]
    if body.ref is not None:
        parties.append((body.ref, "Reference client"))
    contacts = []
    for link, label in parties:
        if isinstance(link, Contact):
            check_unique_contact(db, str(link.email), link.phone)
            contacts.append(link)
        else:
            get_or_404(db, "client", link, label)
    if len(contacts) == 2:
        owner, ref = contacts
        if str(owner.email).lower() == str(ref.email).lower() or owner.phone == ref.phone:
            raise HTTPException(400, detail="Owner and reference contacts must have different email and phone")


def resolve_party(db: Database, link, user_oid: ObjectId, label: str) -> ObjectId:
    """An existing client id, or an inline contact saved as a new client."""
    if isinstance(link, Contact):
        return insert_client(db, link.model_dump(), user_oid)["_id"]
    return get_or_404(db, "client", link, label)["_id"]


@router.get("")
def list_properties(
    status: Optional[PropertyStatus] = None,
    city: Optional[str] = None,
    type: Optional[PropertyType] = None,
    zoning: Optional[Zoning] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1),
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {"is_active": True}
    if status:
        filter_dict["status"] = status
    if city:
        filter_dict["city"] = contains(city)
    if type:
        filter_dict["type"] = type
    if zoning:
        filter_dict["zoning"] = zoning
    if assigned_to and ObjectId.is_valid(assigned_to):
        filter_dict["assigned_to"] = ObjectId(assigned_to)
    if search:
        filter_dict.update(search_filter(search, ["title", "address"]))

    docs, meta = paginate(db["property"], filter_dict, params)
    return {"properties": property_views(db, docs), "pagination": meta}


@router.get("/{property_id}")
def get_property(property_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    doc = get_property_or_404(db, property_id)
    return {"property": property_views(db, [doc])[0]}


@router.post("", status_code=201)
def create_property(body: PropertyIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    check_parties(db, body)
    user_oid = current_user_oid(user)
    owner_id = resolve_party(db, body.owner, user_oid, "Owner client")
    ref_id = resolve_party(db, body.ref, user_oid, "Reference client") if body.ref is not None else None

    doc = body.model_dump(exclude={"owner", "ref"})
    doc.update(
        zoning_note=body.zoning_note if body.zoning == "Mixed Use" else None,
        total_price=total_price(body.area, body.per_sq_ft_rate),
        owner=owner_id,
        ref=ref_id,
        created_by=user_oid,
        assigned_to=optional_object_id(body.assigned_to),
        is_active=True,
    )
    created = create_document(db, "property", doc)
    logger.info("Property %s created", created["_id"])

    add_role(db, owner_id, "seller", created["_id"], user_oid)
    if ref_id is not None and ref_id != owner_id:
        add_role(db, ref_id, "referrer", created["_id"], user_oid)

    return {"message": "Property created successfully", "property": property_views(db, [created])[0]}


@router.put("/{property_id}")
def update_property(
    property_id: str, body: PropertyUpdate, db: Database = Depends(get_db), _=Depends(get_current_user)
):
    existing = get_property_or_404(db, property_id)
    changes = body.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        changes["assigned_to"] = optional_object_id(changes["assigned_to"])
    if "area" in changes or "per_sq_ft_rate" in changes:
        changes["total_price"] = total_price(
            changes.get("area", existing["area"]),
            changes.get("per_sq_ft_rate", existing["per_sq_ft_rate"]),
        )
    if changes.get("zoning", existing.get("zoning")) != "Mixed Use":
        changes["zoning_note"] = None
    doc = update_document(db, "property", existing["_id"], changes)
    return {"message": "Property updated successfully", "property": property_views(db, [doc])[0]}


@router.delete("/{property_id}")
def delete_property(property_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    existing = get_property_or_404(db, property_id)
    update_document(db, "property", existing["_id"], {"is_active": False})

    # roles on a withdrawn listing stop counting toward client status
    affected = db["clientrole"].distinct("client_id", {"property_id": existing["_id"], "status": "active"})
    if affected:
        db["clientrole"].update_many(
            {"property_id": existing["_id"], "status": "active"},
            {"$set": {"status": "inactive", "updated_at": now_utc()}},
        )
        for client_id in affected:
            sync_client_roles(db, client_id)
    logger.info("Property %s soft-deleted, %s clients recomputed", existing["_id"], len(affected))
    return {"message": "Property deleted successfully"}


@router.post("/{property_id}/files", status_code=201)
def attach_property_file(
    property_id: str,
    file: UploadFile = File(...),
    db: Database = Depends(get_db),
    drive: DriveClient = Depends(get_drive),
    _=Depends(get_current_user),
):
    existing = get_property_or_404(db, property_id)
    file_ref = save_upload(db, drive, file)
    db["property"].update_one(
        {"_id": existing["_id"]},
        {"$push": {"files": file_ref}, "$set": {"updated_at": now_utc()}},
    )
    return {"message": "File attached successfully", "file": to_public_id(file_ref)}
