"""
Upload storage.

Files land in ``config.UPLOAD_DIR`` and are referenced as ``/uploads/<name>``.
References outside that prefix (default avatars, external URLs) are never
touched on delete.
"""
import logging
import os
import random
import time
from typing import Optional

from fastapi import UploadFile

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "/uploads/"
CHUNK_SIZE = 1024 * 1024

_FIELD_RULES = {
    "image": ("image/", "video/mp4"),
    "profilePicture": ("image/",),
    "bannerImage": ("image/",),
    "resume": ("image/", "application/pdf"),
}

_FIELD_ERRORS = {
    "image": "Only image files or mp4 video are allowed for post uploads",
    "profilePicture": "Only image files are allowed for profile or banner uploads",
    "bannerImage": "Only image files are allowed for profile or banner uploads",
    "resume": "Only image or PDF files are allowed for resumes",
}


def _is_allowed(field: str, content_type: str) -> bool:
    for rule in _FIELD_RULES.get(field, ("image/",)):
        if rule.endswith("/") and content_type.startswith(rule):
            return True
        if content_type == rule:
            return True
    return False


def media_type(upload: UploadFile) -> str:
    return "video" if (upload.content_type or "").startswith("video/") else "image"


def save_upload(upload: UploadFile, field: str) -> str:
    """Validate and store an uploaded file, returning its reference."""
    content_type = upload.content_type or ""
    if not _is_allowed(field, content_type):
        raise ValidationError(_FIELD_ERRORS.get(field, "Invalid file type"))

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    ext = os.path.splitext(upload.filename or "")[1].lower()
    name = f"{field}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"
    path = os.path.join(config.UPLOAD_DIR, name)

    written = 0
    with open(path, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > config.MAX_UPLOAD_BYTES:
                out.close()
                os.remove(path)
                raise ValidationError("File too large")
            out.write(chunk)

    logger.info("Stored upload %s (%d bytes)", name, written)
    return UPLOAD_PREFIX + name


def delete_media(reference: Optional[str]) -> None:
    if not reference or not reference.startswith(UPLOAD_PREFIX):
        return
    path = os.path.join(config.UPLOAD_DIR, os.path.basename(reference))
    if os.path.exists(path):
        os.remove(path)
        logger.info("Deleted upload %s", reference)
