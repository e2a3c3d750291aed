"""
User profiles: public reads, search, and owner-only partial updates.
"""
import json
import logging
import re
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import media
import posts
from database import get_db, parse_object_id
from errors import AppError, Forbidden, NotFound, ValidationError
from schemas import Education, utcnow
from security import get_current_user
from serializers import to_public

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10

# Upload field -> user document field
UPLOAD_TARGETS = (("profilePicture", "profilePicture"), ("bannerImage", "bannerImage"), ("resume", "resumeUrl"))


class UpdateUserBody(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    headline: Optional[str] = Field(None, max_length=120)
    location: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    skills: Optional[List[str]] = None
    jobInterests: Optional[List[str]] = None
    education: Optional[List[Education]] = None
    onboardingComplete: Optional[bool] = None


def list_users(db: Database) -> List[dict]:
    return [to_public(u) for u in db["user"].find().sort([("createdAt", DESCENDING), ("_id", DESCENDING)])]


def get_profile(db: Database, user_id: str) -> Tuple[dict, List[dict]]:
    user = db["user"].find_one({"_id": parse_object_id(user_id, "User")})
    if not user:
        raise NotFound("User not found")
    return to_public(user), posts.list_posts_by_user(db, str(user["_id"]))


def search_users(db: Database, query: Optional[str]) -> List[dict]:
    if not query or not query.strip():
        raise ValidationError("Please provide a search query")
    pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
    cursor = db["user"].find({"$or": [{"name": pattern}, {"email": pattern}, {"headline": pattern}]}).limit(
        SEARCH_LIMIT
    )
    return [to_public(u) for u in cursor]


def update_profile(
    db: Database,
    target_id: str,
    acting_user: dict,
    fields: UpdateUserBody,
    uploads: Optional[Dict[str, Optional[UploadFile]]] = None,
) -> dict:
    """Apply only the supplied fields; list fields are replaced wholesale."""
    if target_id != str(acting_user["_id"]):
        raise Forbidden("Not authorized to update this profile")

    update = {k: v for k, v in fields.model_dump(exclude_unset=True).items() if v is not None}
    uploads = uploads or {}
    replaced: List[Optional[str]] = []
    saved: List[str] = []
    try:
        for field, stored_as in UPLOAD_TARGETS:
            if uploads.get(field) is not None:
                update[stored_as] = media.save_upload(uploads[field], field)
                saved.append(update[stored_as])
                replaced.append(acting_user.get(stored_as))

        if not update:
            return to_public(acting_user)

        update["updatedAt"] = utcnow()
        updated = db["user"].find_one_and_update(
            {"_id": acting_user["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFound("User not found")
    except (AppError, PyMongoError):
        # Nothing references the new files once the update is abandoned
        for reference in saved:
            media.delete_media(reference)
        raise

    for reference in replaced:
        media.delete_media(reference)
    logger.info("Profile %s updated: %s", target_id, sorted(k for k in update if k != "updatedAt"))
    return to_public(updated)


# Multipart parsing
def _json_list(field: str, value: Optional[str]):
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        raise ValidationError(f"{field} must be a JSON array")
    if not isinstance(parsed, list):
        raise ValidationError(f"{field} must be a JSON array")
    return parsed


def profile_form(
    name: Optional[str] = Form(None),
    headline: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    skills: Optional[str] = Form(None),
    jobInterests: Optional[str] = Form(None),
    education: Optional[str] = Form(None),
    onboardingComplete: Optional[bool] = Form(None),
) -> UpdateUserBody:
    raw = {
        "name": name,
        "headline": headline,
        "location": location,
        "bio": bio,
        "skills": _json_list("skills", skills),
        "jobInterests": _json_list("jobInterests", jobInterests),
        "education": _json_list("education", education),
        "onboardingComplete": onboardingComplete,
    }
    try:
        return UpdateUserBody(**{k: v for k, v in raw.items() if v is not None})
    except PydanticValidationError as exc:
        err = exc.errors()[0]
        field = ".".join(str(part) for part in err.get("loc", ()))
        raise ValidationError(f"{field}: {err.get('msg')}")


def profile_uploads(
    profilePicture: Optional[UploadFile] = File(None),
    bannerImage: Optional[UploadFile] = File(None),
    resume: Optional[UploadFile] = File(None),
) -> Dict[str, Optional[UploadFile]]:
    return {"profilePicture": profilePicture, "bannerImage": bannerImage, "resume": resume}


# Endpoints
router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
def get_all_users(db: Database = Depends(get_db)):
    users = list_users(db)
    return {"success": True, "count": len(users), "users": users}


@router.get("/search")
def search(q: Optional[str] = None, db: Database = Depends(get_db)):
    users = search_users(db, q)
    return {"success": True, "count": len(users), "users": users}


# Declared before "/{user_id}" so "profile" is never taken as an id
@router.put("/profile")
def update_my_profile(
    fields: UpdateUserBody = Depends(profile_form),
    uploads: Dict[str, Optional[UploadFile]] = Depends(profile_uploads),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user = update_profile(db, str(current["_id"]), current, fields, uploads)
    return {"success": True, "message": "Profile updated successfully", "data": user}


@router.get("/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    user, user_posts = get_profile(db, user_id)
    return {"success": True, "user": user, "posts": user_posts}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    fields: UpdateUserBody = Depends(profile_form),
    uploads: Dict[str, Optional[UploadFile]] = Depends(profile_uploads),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user = update_profile(db, user_id, current, fields, uploads)
    return {"success": True, "message": "Profile updated successfully", "data": user}
