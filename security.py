from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db
from errors import AuthFailure, Forbidden

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)
    return encoded_jwt


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "phone": user.get("phone"),
        "role": user["role"],
        "is_active": user.get("is_active", True),
    }


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), database: Database = Depends(get_db)):
    """Resolve the bearer token to a live, active user on every request."""
    if not token:
        raise AuthFailure("Not authorized, no token")
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id: str = payload.get("sub")
    except JWTError:
        raise AuthFailure("Not authorized, token failed")
    if not user_id or not ObjectId.is_valid(user_id):
        raise AuthFailure("Not authorized, token failed")

    user = database["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise AuthFailure("Not authorized, user not found")
    if not user.get("is_active", True):
        raise AuthFailure("Not authorized, account deactivated")
    return public_user(user)


def get_optional_user(token: Optional[str] = Depends(oauth2_scheme), database: Database = Depends(get_db)):
    """Like ``get_current_user`` for public routes: a missing or stale token means anonymous."""
    if not token:
        return None
    try:
        return get_current_user(token, database)
    except AuthFailure:
        return None


def require_admin(user=Depends(get_current_user)):
    if user["role"] != "Admin":
        raise Forbidden("Not authorized, admin access required")
    return user
