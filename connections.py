"""
Connection requests and the symmetric ``connections`` relation.

A request is created ``pending`` and moves once to ``accepted`` or
``rejected``; a pending request may instead be withdrawn (deleted) by its
sender. Accepting writes both user documents. Those writes are run as a
small saga: if the second one fails, the first is undone and the request
goes back to ``pending`` before the error propagates.
"""
import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import notifications
from database import get_db, parse_object_id
from errors import Conflict, Forbidden, InvalidOperation, NotFound
from schemas import ConnectionRequest, utcnow
from security import get_current_user
from serializers import SENDER_FIELDS, populate, to_public

logger = logging.getLogger(__name__)

COLLECTION = "connectionrequest"

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"


def _load_user(db: Database, user_id: str) -> dict:
    user = db["user"].find_one({"_id": parse_object_id(user_id, "User")})
    if not user:
        raise NotFound("User not found")
    return user


def _load_request(db: Database, request_id: str) -> dict:
    request = db[COLLECTION].find_one({"_id": parse_object_id(request_id, "Connection request")})
    if not request:
        raise NotFound("Connection request not found")
    return request


def _between(a: str, b: str) -> dict:
    return {"$or": [{"sender": a, "receiver": b}, {"sender": b, "receiver": a}]}


def send_request(db: Database, sender: dict, receiver_id: str, message: Optional[str] = None) -> dict:
    sender_id = str(sender["_id"])
    if sender_id == receiver_id:
        raise InvalidOperation("Cannot send connection request to yourself")

    receiver = _load_user(db, receiver_id)
    receiver_id = str(receiver["_id"])

    if receiver_id in (sender.get("connections") or []) or sender_id in (receiver.get("connections") or []):
        raise Conflict("Already connected with this user")

    # Any earlier request blocks a new one, including a rejected one
    if db[COLLECTION].find_one(_between(sender_id, receiver_id)):
        raise Conflict("Connection request already exists")

    doc = ConnectionRequest(sender=sender_id, receiver=receiver_id, message=message or "").model_dump()
    try:
        db[COLLECTION].insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("Connection request already exists")

    request_id = str(doc["_id"])
    logger.info("Connection request %s sent from %s to %s", request_id, sender_id, receiver_id)
    notifications.emit(
        db,
        recipient=receiver_id,
        sender=sender_id,
        type="connection_request",
        message=f"{sender.get('name', 'Someone')} sent you a connection request",
        connection_request=request_id,
    )
    return to_public(doc)


def _ensure_receiver_can_act(request: dict, acting_user: dict, verb: str) -> None:
    if request["receiver"] != str(acting_user["_id"]):
        raise Forbidden(f"Not authorized to {verb} this request")
    if request["status"] != PENDING:
        raise Conflict("Request already processed")


def _transition(db: Database, request: dict, new_status: str) -> dict:
    updated = db[COLLECTION].find_one_and_update(
        {"_id": request["_id"], "status": PENDING},
        {"$set": {"status": new_status, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # Someone else processed it between our read and this write
        raise Conflict("Request already processed")
    return updated


def _compensate(db: Database, request: dict, linked: List[Tuple[str, str]]) -> None:
    try:
        for user_id, other_id in linked:
            db["user"].update_one({"_id": parse_object_id(user_id, "User")}, {"$pull": {"connections": other_id}})
        db[COLLECTION].update_one({"_id": request["_id"]}, {"$set": {"status": PENDING, "updatedAt": utcnow()}})
    except PyMongoError:
        logger.exception("Compensation failed for connection request %s; users may be one-sided", request["_id"])


def _link_users(db: Database, request: dict) -> None:
    sender_id, receiver_id = request["sender"], request["receiver"]
    linked: List[Tuple[str, str]] = []
    try:
        for user_id, other_id in ((sender_id, receiver_id), (receiver_id, sender_id)):
            res = db["user"].update_one(
                {"_id": parse_object_id(user_id, "User")}, {"$addToSet": {"connections": other_id}}
            )
            # Only undo memberships this accept actually created
            if res.modified_count == 1:
                linked.append((user_id, other_id))
    except PyMongoError:
        logger.exception("Linking users failed for connection request %s, rolling back", request["_id"])
        _compensate(db, request, linked)
        raise


def accept_request(db: Database, request_id: str, acting_user: dict) -> dict:
    request = _load_request(db, request_id)
    _ensure_receiver_can_act(request, acting_user, "accept")

    updated = _transition(db, request, ACCEPTED)
    _link_users(db, request)
    logger.info("Connection request %s accepted", request_id)

    notifications.emit(
        db,
        recipient=request["sender"],
        sender=request["receiver"],
        type="connection_accepted",
        message=f"{acting_user.get('name', 'Someone')} accepted your connection request",
    )
    return to_public(updated)


def reject_request(db: Database, request_id: str, acting_user: dict) -> dict:
    request = _load_request(db, request_id)
    _ensure_receiver_can_act(request, acting_user, "reject")
    updated = _transition(db, request, REJECTED)
    logger.info("Connection request %s rejected", request_id)
    return to_public(updated)


def withdraw_request(db: Database, sender: dict, receiver_id: str) -> None:
    request = db[COLLECTION].find_one({"sender": str(sender["_id"]), "receiver": receiver_id, "status": PENDING})
    if not request:
        raise NotFound("No pending connection request found to withdraw")

    request_id = str(request["_id"])
    notifications.delete_for_request(db, request_id)
    db[COLLECTION].delete_one({"_id": request["_id"], "status": PENDING})
    logger.info("Connection request %s withdrawn", request_id)


def get_status(db: Database, user: dict, other_id: str) -> dict:
    """Relation of ``other_id`` as seen from ``user``.

    ``connected`` needs membership on both sides and outranks any stale
    pending request.
    """
    user_id = str(user["_id"])
    other = db["user"].find_one({"_id": parse_object_id(other_id, "User")}, {"connections": 1})
    if other and other_id in (user.get("connections") or []) and user_id in (other.get("connections") or []):
        return {"status": "connected"}

    pending = db[COLLECTION].find_one({**_between(user_id, other_id), "status": PENDING})
    if pending:
        direction = "pending" if pending["sender"] == user_id else "received"
        return {"status": direction, "requestId": str(pending["_id"])}
    return {"status": "none"}


def get_pending_requests(db: Database, user: dict) -> List[dict]:
    cursor = db[COLLECTION].find({"receiver": str(user["_id"]), "status": PENDING}).sort(
        [("createdAt", DESCENDING), ("_id", DESCENDING)]
    )
    requests = [to_public(r) for r in cursor]
    return populate(requests, db, "sender", SENDER_FIELDS)


def remove_connection(db: Database, user: dict, other_id: str) -> None:
    user_id = str(user["_id"])
    other_oid = parse_object_id(other_id, "User")
    db["user"].update_one({"_id": user["_id"]}, {"$pull": {"connections": other_id}})
    db["user"].update_one({"_id": other_oid}, {"$pull": {"connections": user_id}})
    logger.info("Connection between %s and %s removed", user_id, other_id)


# Endpoints
router = APIRouter(prefix="/api/connections", tags=["connections"])


class ConnectionRequestBody(BaseModel):
    message: Optional[str] = Field(None, max_length=300)


@router.post("/request/{user_id}", status_code=status.HTTP_201_CREATED)
def send(
    user_id: str,
    body: Optional[ConnectionRequestBody] = None,
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    data = send_request(db, current, user_id, body.message if body else None)
    return {"success": True, "message": "Connection request sent successfully", "data": data}


@router.delete("/request/{user_id}")
def withdraw(user_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    withdraw_request(db, current, user_id)
    return {"success": True, "message": "Connection request withdrawn"}


@router.put("/accept/{request_id}")
def accept(request_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    data = accept_request(db, request_id, current)
    return {"success": True, "message": "Connection request accepted", "data": data}


@router.put("/reject/{request_id}")
def reject(request_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    data = reject_request(db, request_id, current)
    return {"success": True, "message": "Connection request rejected", "data": data}


@router.get("/requests")
def pending(current=Depends(get_current_user), db: Database = Depends(get_db)):
    data = get_pending_requests(db, current)
    return {"success": True, "count": len(data), "data": data}


@router.get("/status/{user_id}")
def connection_status(user_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, **get_status(db, current, user_id)}


@router.delete("/{user_id}")
def remove(user_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    remove_connection(db, current, user_id)
    return {"success": True, "message": "Connection removed successfully"}
