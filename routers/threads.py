import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from database import (
    create_document,
    get_db,
    get_or_404,
    now_utc,
    optional_object_id,
    populate_list,
    populate_many,
    to_public_id,
    update_document,
)
from pagination import PageParams, page_params, page_params_for, paginate
from schemas import Message, MessageIn, Thread, ThreadIn
from security import current_user_oid, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/threads", tags=["threads"])

USER_FIELDS = ("name", "email")


def thread_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    for doc in docs:
        populate_list(db, doc, "participants", "user", USER_FIELDS)
    populate_many(db, docs, "property", "property", ("title", "city"))
    populate_many(db, docs, "client", "client", ("name", "email", "phone"))
    return [to_public_id(d) for d in docs]


def message_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    populate_many(db, docs, "sender", "user", USER_FIELDS)
    return [to_public_id(d) for d in docs]


def get_thread(db: Database, thread_id: str) -> Dict[str, Any]:
    thread = get_or_404(db, "thread", thread_id, "Thread")
    if not thread.get("is_active", True):
        raise HTTPException(404, detail="Thread not found")
    return thread


@router.get("")
def list_threads(
    client: Optional[str] = None,
    property: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    user=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {"is_active": True, "participants": current_user_oid(user)}
    if client and ObjectId.is_valid(client):
        filter_dict["client"] = ObjectId(client)
    if property and ObjectId.is_valid(property):
        filter_dict["property"] = ObjectId(property)
    docs, meta = paginate(db["thread"], filter_dict, params)
    return {"threads": thread_views(db, docs), "pagination": meta}


@router.post("", status_code=201)
def create_thread(body: ThreadIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    if body.property:
        get_or_404(db, "property", body.property, "Property")
    if body.client:
        get_or_404(db, "client", body.client, "Client")
    participants = [current_user_oid(user)]
    for participant in body.participants:
        oid = get_or_404(db, "user", participant, "User")["_id"]
        if oid not in participants:
            participants.append(oid)

    doc = Thread(**body.model_dump()).model_dump()
    doc.update(
        participants=participants,
        property=optional_object_id(body.property),
        client=optional_object_id(body.client),
    )
    created = create_document(db, "thread", doc)
    logger.info("Thread %s created with %s participants", created["_id"], len(participants))
    return {"message": "Thread created successfully", "thread": thread_views(db, [created])[0]}


@router.get("/{thread_id}")
def read_thread(thread_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    return {"thread": thread_views(db, [get_thread(db, thread_id)])[0]}


@router.delete("/{thread_id}")
def delete_thread(thread_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    thread = get_thread(db, thread_id)
    update_document(db, "thread", thread["_id"], {"is_active": False})
    logger.info("Thread %s deactivated", thread["_id"])
    return {"message": "Thread deleted successfully"}


@router.get("/{thread_id}/messages")
def list_messages(
    thread_id: str,
    params: PageParams = Depends(page_params_for("asc")),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    thread = get_thread(db, thread_id)
    docs, meta = paginate(db["message"], {"thread": thread["_id"]}, params)
    return {"messages": message_views(db, docs), "pagination": meta}


@router.post("/{thread_id}/messages", status_code=201)
def post_message(
    thread_id: str, body: MessageIn, db: Database = Depends(get_db), user=Depends(get_current_user)
):
    thread = get_thread(db, thread_id)
    sender = current_user_oid(user)
    doc = Message(sender=str(sender), thread=str(thread["_id"]), **body.model_dump()).model_dump()
    doc.update(sender=sender, thread=thread["_id"])
    created = create_document(db, "message", doc)
    db["thread"].update_one(
        {"_id": thread["_id"]},
        {"$addToSet": {"participants": sender}, "$set": {"updated_at": now_utc()}},
    )
    return {"message": "Message sent successfully", "data": message_views(db, [created])[0]}


@router.post("/{thread_id}/read")
def mark_read(thread_id: str, db: Database = Depends(get_db), user=Depends(get_current_user)):
    thread = get_thread(db, thread_id)
    result = db["message"].update_many(
        {"thread": thread["_id"], "sender": {"$ne": current_user_oid(user)}, "is_read": False},
        {"$set": {"is_read": True, "updated_at": now_utc()}},
    )
    return {"message": "Messages marked as read", "updated": result.modified_count}
