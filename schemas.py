"""
Database Schemas for LinkUp

Each Pydantic model corresponds to a MongoDB collection.
Collection name is the lowercase class name (e.g., ConnectionRequest -> "connectionrequest").
References to other documents are stored as string ids.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, EmailStr

DEFAULT_PROFILE_PICTURE = "https://cdn.pixabay.com/photo/2023/02/18/11/00/icon-7797704_640.png"
DEFAULT_BANNER_IMAGE = "https://thingscareerrelated.com/wp-content/uploads/2021/10/default-background-image.png"

RequestStatus = Literal["pending", "accepted", "rejected"]
NotificationType = Literal["connection_request", "connection_accepted", "post_like", "post_comment"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Education(BaseModel):
    school: str = Field(..., min_length=1, description="School or university")
    degree: str = Field(..., min_length=1, description="Degree obtained or in progress")
    fieldOfStudy: Optional[str] = None
    startYear: Optional[str] = None
    endYear: Optional[str] = None
    description: Optional[str] = None


class User(BaseModel):
    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercase")
    password: str = Field(..., description="Hashed password")
    profilePicture: str = Field(DEFAULT_PROFILE_PICTURE, description="Avatar URL or upload reference")
    bannerImage: str = Field(DEFAULT_BANNER_IMAGE, description="Banner URL or upload reference")
    headline: str = Field("Professional", max_length=120)
    location: str = Field("", max_length=100)
    bio: str = Field("", max_length=500)
    skills: List[str] = Field(default_factory=list, description="List of skills")
    jobInterests: List[str] = Field(default_factory=list, description="List of job interests")
    education: List[Education] = Field(default_factory=list)
    resumeUrl: str = ""
    onboardingComplete: bool = False
    connections: List[str] = Field(default_factory=list, description="Connected user IDs as strings")
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class Comment(BaseModel):
    id: str = Field(default_factory=lambda: str(ObjectId()), description="Comment id")
    user: str = Field(..., description="Author user ID")
    text: str = Field(..., min_length=1)
    createdAt: datetime = Field(default_factory=utcnow)


class Post(BaseModel):
    user: str = Field(..., description="Owner user ID")
    content: str = Field(..., min_length=1)
    image: Optional[str] = Field(None, description="Upload reference for attached media")
    mediaType: Optional[Literal["image", "video"]] = None
    likes: List[str] = Field(default_factory=list, description="IDs of users who liked the post")
    comments: List[Comment] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class ConnectionRequest(BaseModel):
    sender: str = Field(..., description="Sender user ID")
    receiver: str = Field(..., description="Receiver user ID")
    status: RequestStatus = "pending"
    message: str = Field("", max_length=300)
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class Notification(BaseModel):
    recipient: str = Field(..., description="Recipient user ID")
    sender: str = Field(..., description="Acting user ID")
    type: NotificationType
    message: str
    read: bool = False
    connectionRequest: Optional[str] = Field(None, description="Related connection request ID")
    post: Optional[str] = Field(None, description="Related post ID")
    createdAt: datetime = Field(default_factory=utcnow)
