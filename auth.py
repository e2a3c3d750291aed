import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import get_db
from errors import Conflict, ValidationError
from schemas import User as UserSchema
from security import get_current_user, hash_password, token_for_user, verify_password
from serializers import to_public

logger = logging.getLogger(__name__)


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


def get_user_by_email(db: Database, email: str):
    return db["user"].find_one({"email": email.strip().lower()})


def register_user(db: Database, body: RegisterBody) -> dict:
    email = body.email.strip().lower()
    if get_user_by_email(db, email):
        raise Conflict("Email already registered")

    user_doc = UserSchema(
        name=body.name.strip(),
        email=email,
        password=hash_password(body.password),
    ).model_dump()
    try:
        db["user"].insert_one(user_doc)
    except DuplicateKeyError:
        raise Conflict("Email already registered")
    logger.info("Registered user %s", user_doc["_id"])
    return user_doc


def authenticate(db: Database, email: str, password: str) -> dict:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.get("password", "")):
        raise ValidationError("Incorrect email or password")
    return user


# Endpoints
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterBody, db: Database = Depends(get_db)):
    user = register_user(db, body)
    return {"success": True, "token": token_for_user(user), "user": to_public(user)}


@router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    user = authenticate(db, body.email, body.password)
    return {"success": True, "token": token_for_user(user), "user": to_public(user)}


@router.get("/me")
def me(current=Depends(get_current_user)):
    return {"success": True, "user": to_public(current)}
