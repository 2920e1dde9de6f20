import logging

from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import get_db, get_document, serialize_doc, update_document
from errors import AuthenticationError, ValidationError
from permissions import authorize
from schemas import LoginRequest, PasswordChange, RegisterRequest, TokenResponse
from security import TokenClaims, get_current_user, hash_password, issue_token, verify_password
from .users import create_user_account

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: dict) -> TokenResponse:
    return TokenResponse(
        access_token=issue_token(user),
        user={
            "id": str(user["_id"]),
            "username": user["username"],
            "email": user["email"],
            "full_name": user["full_name"],
            "role": user["role"],
            "is_graduated": user.get("is_graduated", False),
        },
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    authorize(None, "registration", "public", message="Cannot self-register as admin",
              requested_role=payload.role)
    user = create_user_account(db, payload.full_name, payload.email, payload.password, payload.role,
                               username=payload.username, department=payload.department)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.info(f"Failed login for {payload.email}")
        raise AuthenticationError("Invalid credentials", "INVALID_CREDENTIALS")
    return _token_response(user)


@router.get("/me")
def me(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    return serialize_doc(get_document(db, "user", current.user_id, "User"))


@router.put("/password")
def change_password(body: PasswordChange, current: TokenClaims = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    user = get_document(db, "user", current.user_id, "User")
    if not verify_password(body.current_password, user.get("password_hash", "")):
        raise ValidationError("Current password is incorrect", "WRONG_PASSWORD")
    update_document(db, "user", user["_id"], {"password_hash": hash_password(body.new_password)})
    logger.info(f"Password changed for user {current.user_id}")
    return {"success": True}
