import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import APIRouter, Depends, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings, get_settings
from database import create_document, get_db, to_object_id
from errors import Conflict, Forbidden, NotFound, Unauthorized
from schemas import Role, User

logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refreshToken"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    name: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: str, role: str, settings: Settings) -> str:
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_expire_minutes)
    payload = {"sub": user_id, "role": role, "type": "access", "exp": expires}
    return jwt.encode(payload, settings.jwt_access_secret, algorithm="HS256")


def create_refresh_token(user_id: str, settings: Settings) -> str:
    expires = datetime.now(timezone.utc) + timedelta(days=settings.jwt_refresh_expire_days)
    payload = {"sub": user_id, "type": "refresh", "exp": expires}
    return jwt.encode(payload, settings.jwt_refresh_secret, algorithm="HS256")


def decode_access_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.jwt_access_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired. Please login again.")
    except jwt.InvalidTokenError:
        raise Unauthorized("Token invalid. Please login again.")
    if payload.get("type") != "access" or not payload.get("sub"):
        raise Unauthorized("Token invalid. Please login again.")
    return payload


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Profile fields safe to return to clients."""
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "role": doc.get("role", Role.USER.value),
        "phone": doc.get("phone", ""),
        "address": doc.get("address") or {},
        "avatar": doc.get("avatar", ""),
        "is_email_verified": doc.get("is_email_verified", False),
    }


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthorized("Not authorized to access this route. Please login.")
    payload = decode_access_token(credentials.credentials, settings)
    try:
        user_oid = to_object_id(payload["sub"])
    except NotFound:
        raise Unauthorized("Token invalid. Please login again.")
    doc = db["user"].find_one({"_id": user_oid}, {"password_hash": 0})
    if not doc:
        raise Unauthorized("User not found with this token")
    try:
        role = Role(doc.get("role", Role.USER.value))
    except ValueError:
        raise Unauthorized("Token invalid. Please login again.")
    return CurrentUser(
        id=str(doc["_id"]),
        name=doc.get("name", ""),
        email=doc.get("email", ""),
        role=role,
    )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise Forbidden(f"User role '{user.role.value}' is not authorized to access this route")
    return user


def register_user(db: Database, name: str, email: str, password: str, phone: str = "", role: Role = Role.USER) -> Dict[str, Any]:
    email = email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise Conflict("User already exists with this email")
    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        phone=phone or "",
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise Conflict("User already exists with this email")
    logger.info("Registered user %s (%s)", user_id, role.value)
    return db["user"].find_one({"_id": to_object_id(user_id)})


def authenticate(db: Database, email: str, password: str) -> Dict[str, Any]:
    doc = db["user"].find_one({"email": email.strip().lower()})
    if not doc or not verify_password(password, doc.get("password_hash", "")):
        raise Unauthorized("Invalid email or password")
    return doc


def _set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.jwt_refresh_expire_days * 24 * 60 * 60,
    )


def _session_payload(doc: Dict[str, Any], response: Response, settings: Settings) -> Dict[str, Any]:
    user_id = str(doc["_id"])
    _set_refresh_cookie(response, create_refresh_token(user_id, settings), settings)
    return {
        "user": public_user(doc),
        "accessToken": create_access_token(user_id, doc.get("role", Role.USER.value), settings),
    }


class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", status_code=201)
def signup(payload: SignUpRequest, response: Response, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    doc = register_user(db, payload.name, payload.email, payload.password, payload.phone or "")
    return {"success": True, "message": "User registered successfully", "data": _session_payload(doc, response, settings)}


@router.post("/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    doc = authenticate(db, payload.email, payload.password)
    return {"success": True, "message": "Login successful", "data": _session_payload(doc, response, settings)}


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    doc = db["user"].find_one({"_id": to_object_id(user.id)})
    return {"success": True, "data": {"user": public_user(doc)}}


@router.post("/logout")
def logout(response: Response, user: CurrentUser = Depends(get_current_user)):
    response.delete_cookie(REFRESH_COOKIE, httponly=True)
    return {"success": True, "message": "Logged out successfully"}
