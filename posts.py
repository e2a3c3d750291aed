"""
Posts with likes and embedded comments.

Reads are public. Only the owner may edit or delete a post and only a
comment's author may delete that comment.
"""
import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import BaseModel
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import media
import notifications
from database import get_db, parse_object_id
from errors import AppError, Forbidden, NotFound, ValidationError
from schemas import Comment, Post, utcnow
from security import get_current_user
from serializers import AUTHOR_FIELDS, COMMENTER_FIELDS, to_public, user_summaries

logger = logging.getLogger(__name__)

COLLECTION = "post"


def _present(db: Database, posts: List[dict]) -> List[dict]:
    """Public form of posts with owner and comment authors filled in."""
    posts = [to_public(p) for p in posts]
    authors = user_summaries(db, (p["user"] for p in posts), AUTHOR_FIELDS)
    commenters = user_summaries(db, (c["user"] for p in posts for c in p.get("comments", [])), COMMENTER_FIELDS)
    for p in posts:
        p["user"] = authors.get(p["user"])
        p["comments"] = [{**c, "user": commenters.get(c["user"])} for c in p.get("comments", [])]
    return posts


def _load_post(db: Database, post_id: str) -> dict:
    post = db[COLLECTION].find_one({"_id": parse_object_id(post_id, "Post")})
    if not post:
        raise NotFound("Post not found")
    return post


def _ensure_owner(post: dict, acting_user: dict, verb: str) -> None:
    if post["user"] != str(acting_user["_id"]):
        raise Forbidden(f"Not authorized to {verb} this post")


def _require_content(content: Optional[str]) -> str:
    if not content or not content.strip():
        raise ValidationError("Please provide post content")
    return content


def list_posts(db: Database) -> List[dict]:
    return _present(db, list(db[COLLECTION].find().sort([("createdAt", DESCENDING), ("_id", DESCENDING)])))


def list_posts_by_user(db: Database, user_id: str) -> List[dict]:
    cursor = db[COLLECTION].find({"user": user_id}).sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
    return _present(db, list(cursor))


def get_post(db: Database, post_id: str) -> dict:
    return _present(db, [_load_post(db, post_id)])[0]


def create_post(db: Database, owner: dict, content: Optional[str], upload: Optional[UploadFile] = None) -> dict:
    content = _require_content(content)
    doc = Post(user=str(owner["_id"]), content=content).model_dump()
    if upload is not None:
        doc["image"] = media.save_upload(upload, "image")
        doc["mediaType"] = media.media_type(upload)
    try:
        db[COLLECTION].insert_one(doc)
    except PyMongoError:
        media.delete_media(doc.get("image"))
        raise
    logger.info("Post %s created by %s", doc["_id"], doc["user"])
    return _present(db, [doc])[0]


def update_post(
    db: Database, post_id: str, acting_user: dict, content: Optional[str], upload: Optional[UploadFile] = None
) -> dict:
    post = _load_post(db, post_id)
    _ensure_owner(post, acting_user, "update")
    content = _require_content(content)

    changes = {"content": content, "updatedAt": utcnow()}
    if upload is not None:
        changes["image"] = media.save_upload(upload, "image")
        changes["mediaType"] = media.media_type(upload)

    try:
        updated = db[COLLECTION].find_one_and_update(
            {"_id": post["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFound("Post not found")
    except (AppError, PyMongoError):
        media.delete_media(changes.get("image"))
        raise
    if upload is not None:
        media.delete_media(post.get("image"))
    return _present(db, [updated])[0]


def delete_post(db: Database, post_id: str, acting_user: dict) -> None:
    post = _load_post(db, post_id)
    _ensure_owner(post, acting_user, "delete")
    db[COLLECTION].delete_one({"_id": post["_id"]})
    media.delete_media(post.get("image"))
    logger.info("Post %s deleted", post_id)


def toggle_like(db: Database, post_id: str, user: dict) -> Tuple[dict, bool]:
    """Flip the user's membership in ``likes``; returns (post, liked)."""
    post = _load_post(db, post_id)
    user_id = str(user["_id"])

    res = db[COLLECTION].update_one({"_id": post["_id"], "likes": {"$ne": user_id}}, {"$addToSet": {"likes": user_id}})
    liked = res.modified_count == 1
    if not liked:
        db[COLLECTION].update_one({"_id": post["_id"]}, {"$pull": {"likes": user_id}})
    elif post["user"] != user_id:
        notifications.emit(
            db,
            recipient=post["user"],
            sender=user_id,
            type="post_like",
            message=f"{user.get('name', 'Someone')} liked your post",
            post=str(post["_id"]),
        )
    return _present(db, [_load_post(db, post_id)])[0], liked


def add_comment(db: Database, post_id: str, user: dict, text: Optional[str]) -> dict:
    if not text or not text.strip():
        raise ValidationError("Please provide comment text")
    post = _load_post(db, post_id)
    user_id = str(user["_id"])
    comment = Comment(user=user_id, text=text).model_dump()
    updated = db[COLLECTION].find_one_and_update(
        {"_id": post["_id"]}, {"$push": {"comments": comment}}, return_document=ReturnDocument.AFTER
    )
    if post["user"] != user_id:
        notifications.emit(
            db,
            recipient=post["user"],
            sender=user_id,
            type="post_comment",
            message=f"{user.get('name', 'Someone')} commented on your post",
            post=str(post["_id"]),
        )
    return _present(db, [updated])[0]


def delete_comment(db: Database, post_id: str, comment_id: str, acting_user: dict) -> dict:
    post = _load_post(db, post_id)
    comment = next((c for c in post.get("comments", []) if c.get("id") == comment_id), None)
    if comment is None:
        raise NotFound("Comment not found")
    if comment["user"] != str(acting_user["_id"]):
        raise Forbidden("Not authorized to delete this comment")
    updated = db[COLLECTION].find_one_and_update(
        {"_id": post["_id"]}, {"$pull": {"comments": {"id": comment_id}}}, return_document=ReturnDocument.AFTER
    )
    return _present(db, [updated])[0]


# Endpoints
router = APIRouter(prefix="/api/posts", tags=["posts"])


class CommentBody(BaseModel):
    text: str = ""


@router.get("")
def get_all_posts(db: Database = Depends(get_db)):
    posts = list_posts(db)
    return {"success": True, "count": len(posts), "posts": posts}


@router.get("/{post_id}")
def get_one_post(post_id: str, db: Database = Depends(get_db)):
    return {"success": True, "post": get_post(db, post_id)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create(
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = create_post(db, current, content, image)
    return {"success": True, "message": "Post created successfully", "post": post}


@router.put("/{post_id}")
def update(
    post_id: str,
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = update_post(db, post_id, current, content, image)
    return {"success": True, "message": "Post updated successfully", "post": post}


@router.delete("/{post_id}")
def delete(post_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    delete_post(db, post_id, current)
    return {"success": True, "message": "Post deleted successfully"}


@router.post("/{post_id}/like")
def like(post_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    post, liked = toggle_like(db, post_id, current)
    return {"success": True, "message": "Post liked" if liked else "Post unliked", "post": post}


@router.post("/{post_id}/comment")
def comment(post_id: str, body: CommentBody, current=Depends(get_current_user), db: Database = Depends(get_db)):
    post = add_comment(db, post_id, current, body.text)
    return {"success": True, "message": "Comment added successfully", "post": post}


@router.delete("/{post_id}/comment/{comment_id}")
def uncomment(post_id: str, comment_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    post = delete_comment(db, post_id, comment_id, current)
    return {"success": True, "message": "Comment deleted successfully", "post": post}
