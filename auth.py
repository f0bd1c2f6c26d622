"""
Email/password accounts with opaque bearer session tokens
"""
import hashlib
import secrets
import sqlite3
from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

import db
from errors import AuthenticationError, ValidationError

bearer_scheme = HTTPBearer(auto_error=False)


def _password_bytes(password: str) -> bytes:
    password_bytes = password.encode("utf-8")
    # bcrypt only looks at the first 72 bytes
    if len(password_bytes) > 72:
        password_bytes = hashlib.sha256(password_bytes).hexdigest().encode("utf-8")
    return password_bytes


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))


def _start_session(user: dict) -> dict:
    token = secrets.token_urlsafe(32)
    db.create_session(user["id"], token)
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": {"id": user["id"], "email": user["email"]},
    }


def sign_up(email: str, password: str) -> dict:
    email = email.strip().lower()
    try:
        user = db.create_user(email, hash_password(password))
    except sqlite3.IntegrityError:
        raise ValidationError("An account with this email already exists")
    return _start_session(user)


def sign_in(email: str, password: str) -> dict:
    user = db.get_user_by_email(email.strip().lower())
    if not user or not verify_password(password, user["password_hash"]):
        logger.info("Rejected sign-in attempt")
        raise AuthenticationError("Invalid email or password")
    return _start_session(user)


def sign_out(token: str):
    db.delete_session(token)


def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    return credentials.credentials


def get_current_user(token: str = Depends(get_current_token)) -> dict:
    """FastAPI dependency resolving the bearer token to its user."""
    user = db.get_session_user(token)
    if user is None:
        raise AuthenticationError("Not authenticated")
    return user
