import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query
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
from hooks import apply_task_status
from pagination import PageParams, page_params, paginate, search_filter
from schemas import Priority, Task, TaskIn, TaskStatus, TaskUpdate
from security import current_user_oid, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

REF_FIELDS = ("assigned_to", "property", "client")


def task_views(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    populate_many(db, docs, "assigned_to", "user", ("name", "email"))
    populate_many(db, docs, "property", "property", ("title", "city"))
    populate_many(db, docs, "client", "client", ("name", "email", "phone"))
    return [to_public_id(d) for d in docs]


def _check_refs(db: Database, changes: Dict[str, Any]) -> Dict[str, Any]:
    if changes.get("property"):
        get_or_404(db, "property", changes["property"], "Property")
    if changes.get("client"):
        get_or_404(db, "client", changes["client"], "Client")
    for field in REF_FIELDS:
        if field in changes:
            changes[field] = optional_object_id(changes[field])
    return changes


@router.get("")
def list_tasks(
    status: Optional[TaskStatus] = None,
    priority: Optional[Priority] = None,
    assigned_to: Optional[str] = None,
    client: Optional[str] = None,
    property: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1),
    params: PageParams = Depends(page_params),
    db: Database = Depends(get_db),
    _=Depends(get_current_user),
):
    filter_dict: Dict[str, Any] = {"is_active": True}
    if status:
        filter_dict["status"] = status
    if priority:
        filter_dict["priority"] = priority
    for field, value in (("assigned_to", assigned_to), ("client", client), ("property", property)):
        if value and ObjectId.is_valid(value):
            filter_dict[field] = ObjectId(value)
    if search:
        filter_dict.update(search_filter(search, ["title", "description"]))

    docs, meta = paginate(db["task"], filter_dict, params)
    return {"tasks": task_views(db, docs), "pagination": meta}


@router.get("/{task_id}")
def get_task(task_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    doc = get_or_404(db, "task", task_id, "Task")
    return {"task": task_views(db, [doc])[0]}


@router.post("", status_code=201)
def create_task(body: TaskIn, db: Database = Depends(get_db), user=Depends(get_current_user)):
    doc = _check_refs(db, Task(**body.model_dump()).model_dump())
    doc["assigned_to"] = doc["assigned_to"] or current_user_oid(user)
    doc = apply_task_status({}, doc)
    created = create_document(db, "task", doc)
    logger.info("Task %s created", created["_id"])
    return {"message": "Task created successfully", "task": task_views(db, [created])[0]}


@router.put("/{task_id}")
def update_task(task_id: str, body: TaskUpdate, db: Database = Depends(get_db), _=Depends(get_current_user)):
    existing = get_or_404(db, "task", task_id, "Task")
    changes = apply_task_status(existing, _check_refs(db, body.model_dump(exclude_unset=True)))
    doc = update_document(db, "task", existing["_id"], changes)
    return {"message": "Task updated successfully", "task": task_views(db, [doc])[0]}


@router.delete("/{task_id}")
def delete_task(task_id: str, db: Database = Depends(get_db), _=Depends(get_current_user)):
    existing = get_or_404(db, "task", task_id, "Task")
    update_document(db, "task", existing["_id"], {"is_active": False})
    logger.info("Task %s deactivated", existing["_id"])
    return {"message": "Task deleted successfully"}
