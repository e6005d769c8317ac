"""Shared dependencies: DB session, current user, request context."""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from trackroster.database import get_db
from trackroster.exceptions import Unauthorized
from trackroster.models.user import User
from trackroster.services.auth import decode_token_with_error

security = HTTPBearer(auto_error=False)


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise Unauthorized("Unauthorized")
    payload, _ = decode_token_with_error((credentials.credentials or "").strip())
    if not payload:
        raise Unauthorized("Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token")
    user = db.get(User, user_id)
    if not user:
        raise Unauthorized("User not found")
    if not user.email_verified:
        raise Unauthorized("Confirm your email before continuing.")
    return user


def get_request_meta(request: Request) -> dict:
    """Client IP and user agent for audit entries."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": (request.headers.get("user-agent") or "").strip() or None,
    }
