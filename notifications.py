"""
Notifications: durable records of events directed at a user.

``emit`` is called synchronously by other services. It never fails the
caller: a store error is logged and the triggering action stands.
"""
import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import get_db, parse_object_id
from errors import NotFound
from schemas import Notification, NotificationType
from security import get_current_user
from serializers import SENDER_FIELDS, populate, to_public

logger = logging.getLogger(__name__)

COLLECTION = "notification"


def emit(
    db: Database,
    recipient: str,
    sender: str,
    type: NotificationType,
    message: str,
    connection_request: Optional[str] = None,
    post: Optional[str] = None,
) -> Optional[dict]:
    doc = Notification(
        recipient=recipient,
        sender=sender,
        type=type,
        message=message,
        connectionRequest=connection_request,
        post=post,
    ).model_dump()
    try:
        db[COLLECTION].insert_one(doc)
    except PyMongoError:
        logger.exception("Failed to create %s notification for user %s", type, recipient)
        return None
    logger.debug("Notification %s created for user %s", type, recipient)
    return doc


def list_notifications(db: Database, owner: dict, limit: int = 20, skip: int = 0) -> Tuple[List[dict], int]:
    """Newest first, plus the owner's total unread count."""
    owner_id = str(owner["_id"])
    cursor = (
        db[COLLECTION]
        .find({"recipient": owner_id})
        .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
        .skip(skip)
        .limit(limit)
    )
    items = [to_public(n) for n in cursor]
    populate(items, db, "sender", SENDER_FIELDS)
    unread = db[COLLECTION].count_documents({"recipient": owner_id, "read": False})
    return items, unread


def mark_read(db: Database, notification_id: str, owner: dict) -> dict:
    oid = parse_object_id(notification_id, "Notification")
    updated = db[COLLECTION].find_one_and_update(
        {"_id": oid, "recipient": str(owner["_id"])},
        {"$set": {"read": True}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFound("Notification not found")
    return to_public(updated)


def mark_all_read(db: Database, owner: dict) -> int:
    res = db[COLLECTION].update_many({"recipient": str(owner["_id"]), "read": False}, {"$set": {"read": True}})
    return res.modified_count


def delete_notification(db: Database, notification_id: str, owner: dict) -> None:
    oid = parse_object_id(notification_id, "Notification")
    deleted = db[COLLECTION].find_one_and_delete({"_id": oid, "recipient": str(owner["_id"])})
    if deleted is None:
        raise NotFound("Notification not found")


def delete_for_request(db: Database, request_id: str) -> int:
    res = db[COLLECTION].delete_many({"connectionRequest": request_id, "type": "connection_request"})
    return res.deleted_count


# Endpoints
router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
def get_notifications(
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    items, unread = list_notifications(db, current, limit=limit, skip=skip)
    return {"success": True, "count": len(items), "unreadCount": unread, "data": items}


@router.put("/read-all")
def read_all(current=Depends(get_current_user), db: Database = Depends(get_db)):
    mark_all_read(db, current)
    return {"success": True, "message": "All notifications marked as read"}


@router.put("/{notification_id}/read")
def read_one(notification_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "data": mark_read(db, notification_id, current)}


@router.delete("/{notification_id}")
def remove(notification_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    delete_notification(db, notification_id, current)
    return {"success": True, "message": "Notification deleted"}
