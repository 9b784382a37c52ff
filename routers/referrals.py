import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
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
from hooks import apply_referral_update, chain_level, referral_view
from pagination import PageParams, page_params, paginate, search_filter
from schemas import CommissionStatus, Referral, ReferralIn, ReferralStatus, ReferralUpdate, ReferredType
from security import current_user_oid, get_current_user, require_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/referrals", tags=["referrals"])

CLIENT_FIELDS = ("name", "email", "phone", "type", "status")
PROPERTY_FIELDS = ("title", "city", "total_price")
ID_FIELDS = ("referred_by_client_id", "referred_client_id", "referred_property_id", "deal_id",
             "parent_referral_id", "assigned_to")


def referral_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    populate_many(db, docs, "referred_by_client_id", "client", CLIENT_FIELDS, into="referred_by")
    populate_many(db, docs, "referred_client_id", "client", CLIENT_FIELDS, into="referred_client")
    populate_many(db, docs, "referred_property_id", "property", PROPERTY_FIELDS, into="referred_property")
    populate_many(db, docs, "parent_referral_id", "referral",
                  ("referred_by_client_id", "referred_type", "chain_level"), into="parent_referral")
    populate_many(db, docs, "assigned_to", "user", ("name", "email"))
    return [to_public_id(referral_view(d)) for d in docs]


def _group_counts(db: Database, field: str) -> List[Dict[str, Any]]:
    return list(db["referral"].aggregate([{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}]))


@router.get("")
def list_referrals(
    status: Optional[ReferralStatus] = None,
    commission_status: Optional[CommissionStatus] = None,
    referred_by_client_id: Optional[str] = None,
    referred_type: Optional[ReferredType] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1),
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {}
    if status:
        filter_dict["status"] = status
    if commission_status:
        filter_dict["commission_status"] = commission_status
    if referred_by_client_id and ObjectId.is_valid(referred_by_client_id):
        filter_dict["referred_by_client_id"] = ObjectId(referred_by_client_id)
    if referred_type:
        filter_dict["referred_type"] = referred_type
    if assigned_to and ObjectId.is_valid(assigned_to):
        filter_dict["assigned_to"] = ObjectId(assigned_to)
    if search:
        referrers = db["client"].find(search_filter(search, ["name", "email", "phone"]), {"_id": 1})
        filter_dict["referred_by_client_id"] = {"$in": [c["_id"] for c in referrers]}

    docs, meta = paginate(db["referral"], filter_dict, params)
    return {"referrals": referral_views(db, docs), "pagination": meta}


@router.get("/stats/overview")
def referral_stats(db: Database = Depends(get_db), _=Depends(get_current_user)):
    collection = db["referral"]
    sums = list(collection.aggregate([
        {"$group": {
            "_id": None,
            "promised": {"$sum": "$commission.promised"},
            "paid": {"$sum": "$commission.paid"},
        }}
    ]))
    totals = sums[0] if sums else {"promised": 0, "paid": 0}
    return {
        "overview": {
            "total_referrals": collection.count_documents({}),
            "active_referrals": collection.count_documents({"status": "active"}),
            "converted_referrals": collection.count_documents({"status": "converted"}),
            "total_commission_promised": totals["promised"],
            "total_commission_paid": totals["paid"],
        },
        "by_status": _group_counts(db, "status"),
        "by_commission_status": _group_counts(db, "commission_status"),
        "by_type": _group_counts(db, "referred_type"),
    }


@router.get("/client/{client_id}")
def referrals_by_client(client_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    oid = parse_object_id(client_id, "Client")
    docs = get_documents(db, "referral", {"referred_by_client_id": oid}, sort=[("created_at", -1)])
    return {"referrals": referral_views(db, docs)}


@router.get("/{referral_id}")
def get_referral(referral_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    doc = get_or_404(db, "referral", referral_id, "Referral")
    return {"referral": referral_views(db, [doc])[0]}


@router.post("", status_code=201)
def create_referral(body: ReferralIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    get_or_404(db, "client", body.referred_by_client_id, "Referrer client")

    if body.referred_type == "client":
        if not body.referred_client_id or body.referred_property_id:
            raise HTTPException(400, detail="A client referral needs referred_client_id and no referred_property_id")
        get_or_404(db, "client", body.referred_client_id, "Referred client")
    else:
        if not body.referred_property_id or body.referred_client_id:
            raise HTTPException(400, detail="A property referral needs referred_property_id and no referred_client_id")
        get_or_404(db, "property", body.referred_property_id, "Referred property")

    parent = None
    if body.parent_referral_id:
        parent = get_or_404(db, "referral", body.parent_referral_id, "Parent referral")

    commission = body.commission.model_dump()
    commission["paid"] = 0
    referral = Referral(
        **body.model_dump(exclude={"commission"}),
        commission=commission,
        chain_level=chain_level(parent),
    )
    doc = referral.model_dump()
    for field in ID_FIELDS:
        doc[field] = optional_object_id(doc[field])
    doc["assigned_to"] = doc["assigned_to"] or current_user_oid(user)

    created = create_document(db, "referral", doc)
    logger.info("Referral %s created at chain level %s", created["_id"], created["chain_level"])
    return {"message": "Referral created successfully", "referral": referral_views(db, [created])[0]}


@router.put("/{referral_id}")
def update_referral(
    referral_id: str, body: ReferralUpdate, db: Database = Depends(get_db), _=Depends(get_current_user)
):
    existing = get_or_404(db, "referral", referral_id, "Referral")
    changes = body.model_dump(exclude_unset=True)
    for field in ("deal_id", "assigned_to"):
        if field in changes:
            changes[field] = optional_object_id(changes[field])
    doc = update_document(db, "referral", existing["_id"], apply_referral_update(existing, changes))
    return {"message": "Referral updated successfully", "referral": referral_views(db, [doc])[0]}


@router.delete("/{referral_id}")
def delete_referral(
    referral_id: str, db: Database = Depends(get_db), _=Depends(require_role(["admin", "manager"]))
):
    existing = get_or_404(db, "referral", referral_id, "Referral")
    db["referral"].delete_one({"_id": existing["_id"]})
    logger.info("Referral %s deleted", existing["_id"])
    return {"message": "Referral deleted successfully"}
