"""Helpers turning stored documents into API payloads."""
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

SENDER_FIELDS = ("name", "profilePicture", "headline")
AUTHOR_FIELDS = ("name", "email", "profilePicture", "headline")
COMMENTER_FIELDS = ("name", "profilePicture")


def to_public(doc: Optional[dict]) -> Optional[dict]:
    """Expose ``_id`` as ``id`` and strip secrets."""
    if not doc:
        return doc
    doc = {**doc}
    doc["id"] = str(doc.get("_id")) if doc.get("_id") else None
    doc.pop("_id", None)
    doc.pop("password", None)
    return doc


def user_summaries(db: Database, user_ids: Iterable[str], fields: Iterable[str]) -> Dict[str, dict]:
    """Fetch a small projection of several users keyed by their string id."""
    oids: List[ObjectId] = []
    for uid in set(user_ids):
        try:
            oids.append(ObjectId(uid))
        except (InvalidId, TypeError):
            continue
    if not oids:
        return {}
    projection = {f: 1 for f in fields}
    return {str(u["_id"]): to_public(u) for u in db["user"].find({"_id": {"$in": oids}}, projection)}


def populate(docs: List[dict], db: Database, key: str, fields: Iterable[str]) -> List[dict]:
    """Replace the user id stored under ``key`` with that user's summary.

    Ids whose user no longer exists become ``None``.
    """
    summaries = user_summaries(db, (d[key] for d in docs if d.get(key)), fields)
    for d in docs:
        d[key] = summaries.get(d.get(key))
    return docs
