"""Audit trail for verification failures, account confirmation and team billing. Entries are append-only."""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from trackroster.models.audit_log import AuditLog

CATEGORY_STATUS_CHANGE = "status_change"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"
CATEGORY_BILLING = "billing"
CATEGORY_RECONCILIATION = "reconciliation"

# Column limits (match model)
_CATEGORY_LEN = 32
_TITLE_LEN = 255
_ACTOR_EMAIL_LEN = 255
_IP_LEN = 64
_USER_AGENT_LEN = 500
_MESSAGE_LEN = 100_000


def _sanitize_meta_value(v: Any) -> Any:
    """Convert to JSON-serializable value so meta never raises on INSERT."""
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, dict):
        return {str(k): _sanitize_meta_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_sanitize_meta_value(x) for x in v]
    return str(v)


def _sanitize_meta(meta: dict[str, Any] | None) -> dict[str, Any] | None:
    if meta is None:
        return None
    return {str(k): _sanitize_meta_value(v) for k, v in meta.items()}


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    team_id: int | None = None,
    actor_user_id: int | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one audit record. String fields are truncated to column limits; commit remains with caller."""
    entry = AuditLog(
        category=(category or "")[:_CATEGORY_LEN].strip() or CATEGORY_STATUS_CHANGE,
        title=(title or "")[:_TITLE_LEN].strip() or "-",
        message=(message or "")[:_MESSAGE_LEN].strip() or "-",
        team_id=team_id,
        actor_user_id=actor_user_id,
        actor_email=(actor_email[:_ACTOR_EMAIL_LEN] if actor_email else None),
        ip_address=(ip_address[:_IP_LEN] if ip_address else None),
        user_agent=(str(user_agent)[:_USER_AGENT_LEN] if user_agent else None),
        meta=_sanitize_meta(meta),
    )
    db.add(entry)
    db.flush()
    return entry


def log_failed_verification(db: Session, email: str, reason: str, request_meta: dict[str, Any] | None = None) -> AuditLog:
    """One entry per rejected redemption: reason is invalid_code, expired_code or too_many_attempts."""
    request_meta = request_meta or {}
    return create_log(
        db,
        CATEGORY_FAILED_ATTEMPT,
        "Email verification failed",
        f"Verification failed for {email}: {reason}.",
        actor_email=email,
        ip_address=request_meta.get("ip_address"),
        user_agent=request_meta.get("user_agent"),
        meta={"reason": reason},
    )


def log_reconciliation_case(
    db: Session,
    checkout_session_id: str,
    reason: str,
    *,
    stripe_event_id: str | None = None,
    checkout_metadata: dict[str, Any] | None = None,
    team_id: int | None = None,
) -> AuditLog:
    """A paid checkout that could not be turned into a team. The checkout metadata is kept for the operator."""
    return create_log(
        db,
        CATEGORY_RECONCILIATION,
        "Paid checkout needs reconciliation",
        f"Checkout {checkout_session_id} was paid but could not be provisioned: {reason}.",
        team_id=team_id,
        meta={
            "checkout_session_id": checkout_session_id,
            "stripe_event_id": stripe_event_id,
            "metadata": checkout_metadata or {},
        },
    )
