"""
Bearer token verification against Firebase and role checks.
"""

import base64
import json
import logging
import os
from typing import Optional

import firebase_admin
from email_validator import EmailNotValidError, validate_email
from fastapi import Depends, Header, HTTPException
from firebase_admin import auth, credentials

from database import get_db

logger = logging.getLogger(__name__)

FB_SERVICE_KEY = os.getenv("FB_SERVICE_KEY")


def _firebase_app():
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    if not FB_SERVICE_KEY:
        raise HTTPException(status_code=500, detail="Identity provider not configured")
    service_account = json.loads(base64.b64decode(FB_SERVICE_KEY).decode("utf-8"))
    return firebase_admin.initialize_app(credentials.Certificate(service_account))


def normalize_email(email: str) -> str:
    """Canonical form of an email, matching what EmailStr fields store."""
    return validate_email(email, check_deliverability=False).normalized


def canonical_email(email: str) -> str:
    try:
        return normalize_email(email)
    except EmailNotValidError:
        return email


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_id_token(token: str) -> str:
    """Return the verified email for a Firebase ID token."""
    try:
        decoded = auth.verify_id_token(token, app=_firebase_app())
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
            auth.RevokedIdTokenError, auth.CertificateFetchError) as e:
        logger.info("Rejected bearer token: %s", e)
        raise HTTPException(status_code=401, detail="Unauthorized Access!")
    email = decoded.get("email")
    if not email:
        raise HTTPException(status_code=401, detail="Unauthorized Access!")
    try:
        return normalize_email(email)
    except EmailNotValidError:
        raise HTTPException(status_code=401, detail="Unauthorized Access!")


def verify_token(authorization: Optional[str] = Header(default=None)) -> str:
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Unauthorized Access!")
    return verify_id_token(token)


def optional_principal(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    token = _bearer_token(authorization)
    if token is None:
        return None
    return verify_id_token(token)


def is_admin(db, email: Optional[str]) -> bool:
    if not email:
        return False
    user = db["user"].find_one({"email": email}, {"role": 1})
    return bool(user and user.get("role") == "admin")


def require_admin(email: str = Depends(verify_token), db=Depends(get_db)) -> str:
    if not is_admin(db, email):
        raise HTTPException(status_code=403, detail="Admin only")
    return email
