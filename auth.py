import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, now, serialize_doc, to_object_id
from errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from schemas import Address, User as UserSchema

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "30"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

INVALID_CREDENTIALS = "Invalid email or password"

email_adapter = TypeAdapter(EmailStr)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
security = HTTPBearer(auto_error=False)

# Operation -> role required to perform it. "user" is any signed-in account.
PERMISSIONS = {
    "profile:read": "user",
    "profile:update": "user",
    "users:list": "admin",
    "products:create": "admin",
    "products:update": "admin",
    "products:delete": "admin",
    "reviews:create": "user",
    "orders:create": "user",
    "orders:mine": "user",
    "orders:read": "user",
    "orders:pay": "user",
    "orders:list": "admin",
    "orders:deliver": "admin",
    "orders:status": "admin",
}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # not a hash passlib recognises
        return False


def create_token(user_id: str) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRE_DAYS)
    return jwt.encode({"id": user_id, "exp": exp}, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Not authorized, token failed")


def public_user(user: dict) -> dict:
    """User projection without the password hash."""
    data = serialize_doc(user)
    data.pop("password", None)
    return data


def auth_response(user: dict) -> dict:
    data = serialize_doc(user)
    return {
        "id": data["id"],
        "name": data["name"],
        "email": data["email"],
        "role": data.get("role", "user"),
        "token": create_token(data["id"]),
    }


def verify(db, token: Optional[str]) -> dict:
    """Resolve the user a bearer token belongs to."""
    if not token:
        raise Unauthorized("Not authorized, no token")
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise Unauthorized("Not authorized, token failed")
    try:
        oid = to_object_id(user_id, "User")
    except NotFound:
        raise Unauthorized("Not authorized, token failed")
    user = db["user"].find_one({"_id": oid}, {"password": 0})
    if not user:
        raise Unauthorized("Not authorized, user not found")
    return user


def require_role(user: dict, role: str) -> None:
    if role == "user":
        return
    if user.get("role") != role:
        raise Forbidden("Not authorized as admin" if role == "admin" else f"Requires role {role}")


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db=Depends(get_db),
):
    token = credentials.credentials if credentials else None
    return verify(db, token)


def authorize(operation: str):
    """Dependency gating a route on the role PERMISSIONS declares for it."""
    role = PERMISSIONS[operation]

    def dependency(user=Depends(get_current_user)):
        require_role(user, role)
        return user

    return dependency


# ----------------------- Identity store -----------------------
def normalize_email(email: str) -> str:
    """Same normalization EmailStr applies at registration (lowercased domain)."""
    return email_adapter.validate_python(email)


def valid_email(email: str) -> str:
    try:
        return normalize_email(email)
    except PydanticValidationError:
        raise ValidationError("Please provide a valid email")


def register(db, name: str, email: str, password: str) -> dict:
    email = valid_email(email)
    if db["user"].find_one({"email": email}):
        raise Conflict("User already exists")
    user = UserSchema(name=name, email=email, password=hash_password(password))
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise Conflict("User already exists")
    logger.info("Registered user %s", user_id)
    return db["user"].find_one({"_id": to_object_id(user_id)})


def login(db, email: str, password: str) -> dict:
    try:
        email = normalize_email(email)
    except PydanticValidationError:
        logger.info("Failed login attempt")
        raise Unauthorized(INVALID_CREDENTIALS)
    user = db["user"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password", "")):
        logger.info("Failed login attempt")
        raise Unauthorized(INVALID_CREDENTIALS)
    return user


def get_profile(db, user_id) -> dict:
    user = db["user"].find_one({"_id": to_object_id(user_id, "User")}, {"password": 0})
    if not user:
        raise NotFound("User not found")
    return user


def update_profile(
    db,
    user_id,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[Address] = None,
    password: Optional[str] = None,
) -> dict:
    oid = to_object_id(user_id, "User")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise NotFound("User not found")

    update = {}
    if name:
        update["name"] = name
    if email:
        email = valid_email(email)
    if email and email != user["email"]:
        if db["user"].find_one({"email": email, "_id": {"$ne": oid}}):
            raise Conflict("User already exists")
        update["email"] = email
    if phone:
        update["phone"] = phone
    if address is not None:
        update["address"] = address.model_dump()
    if password:
        update["password"] = hash_password(password)
    update["updatedAt"] = now()

    try:
        db["user"].update_one({"_id": oid}, {"$set": update})
    except DuplicateKeyError:
        raise Conflict("User already exists")
    return db["user"].find_one({"_id": oid})


def list_users(db) -> list:
    return list(db["user"].find({}, {"password": 0}).sort("createdAt", -1))
