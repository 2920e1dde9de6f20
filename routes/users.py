import logging
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, get_document, get_documents, serialize_doc, update_document
from enrollment import apply_pending_enrollments
from errors import ValidationError
from permissions import authorize
from schemas import Role, User, UserCreate, UserUpdate
from security import TokenClaims, get_current_user, hash_password

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


def _username_from_email(db: Database, email: str) -> str:
    base = re.sub(r"[^a-zA-Z0-9._-]", "_", email.split("@")[0]) or "user"
    username = base
    suffix = 0
    while db["user"].find_one({"username": username}):
        suffix += 1
        username = f"{base}{suffix}"
    return username


def create_user_account(db: Database, full_name: str, email: str, password: str, role: Role = "student",
                        username: Optional[str] = None, department: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a user after checking email/username uniqueness, then apply any
    enrollments waiting for that email (pre-authorized or mandatory courses).
    """
    if db["user"].find_one({"email": email}):
        raise ValidationError("Email already registered", "EMAIL_EXISTS", {"email": email})
    if username:
        if db["user"].find_one({"username": username}):
            raise ValidationError("Username already taken", "USERNAME_EXISTS", {"username": username})
    else:
        username = _username_from_email(db, email)

    try:
        user = create_document(db, "user", User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
            department=department,
        ))
    except DuplicateKeyError:
        raise ValidationError("Email or username already in use", "USER_EXISTS")

    joined = apply_pending_enrollments(db, user)
    logger.info(f"Created {role} account {user['_id']} ({len(joined)} enrollments applied)")
    return user


@router.get("")
def list_users(role: Optional[Role] = None, current: TokenClaims = Depends(get_current_user),
               db: Database = Depends(get_db)):
    authorize(current, "user", "list")
    query = {"role": role} if role else {}
    return [serialize_doc(u) for u in get_documents(db, "user", query, sort=[("created_at", DESCENDING)])]


@router.get("/students")
def list_students(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    authorize(current, "user", "list_students")
    students = get_documents(db, "user", {"role": "student"}, sort=[("full_name", 1)])
    return [serialize_doc(s) for s in students]


@router.post("", status_code=201)
def create_user(body: UserCreate, current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    authorize(current, "user", "create")
    user = create_user_account(db, body.full_name, body.email, body.password, body.role,
                               username=body.username, department=body.department)
    return serialize_doc(user)


@router.put("/{user_id}")
def update_user(user_id: str, body: UserUpdate, current: TokenClaims = Depends(get_current_user),
                db: Database = Depends(get_db)):
    authorize(current, "user", "update")
    user = get_document(db, "user", user_id, "User")
    data = {k: v for k, v in body.model_dump().items() if v is not None}
    if not data:
        return serialize_doc(user)
    return serialize_doc(update_document(db, "user", user["_id"], data))


@router.post("/{user_id}/graduate")
def graduate_student(user_id: str, current: TokenClaims = Depends(get_current_user),
                     db: Database = Depends(get_db)):
    authorize(current, "user", "graduate")
    user = get_document(db, "user", user_id, "User")
    if user.get("role") != "student":
        raise ValidationError("Only students can be graduated", "NOT_A_STUDENT")
    updated = update_document(db, "user", user["_id"], {"is_graduated": True})
    logger.info(f"Student {user_id} marked as graduated by {current.user_id}")
    return serialize_doc(updated)
