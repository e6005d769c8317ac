"""Email verification: issue a one-time code, redeem it to confirm the identity.

Redemption order is fixed: lookup, exhaustion check, persisted increment, expiry,
code comparison, confirmation. Each step decides which error the caller sees.
"""
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trackroster.config import get_settings
from trackroster.exceptions import (
    AlreadyConfirmed,
    CodeMismatch,
    Expired,
    NotFound,
    StorageError,
    TooManyAttempts,
    UpstreamIdentityError,
    ValidationError,
)
from trackroster.models.user import User
from trackroster.services import code_store
from trackroster.services.audit_log import create_log, log_failed_verification, CATEGORY_STATUS_CHANGE
from trackroster.services.auth import get_password_hash, get_user_by_email, normalize_email, sign_in_with_password
from trackroster.services.notifications import send_verification_email

log = logging.getLogger("uvicorn.error")

CONFIRMED_SIGN_IN_MESSAGE = "Email confirmed! Please sign in."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Uniform over 100000..999999."""
    return str(100000 + secrets.randbelow(900000))


def _codes_match(submitted: str, stored: str) -> bool:
    return hmac.compare_digest(submitted.encode("utf-8"), (stored or "").encode("utf-8"))


def _upsert_pending_identity(db: Session, email: str, password: str, full_name: str | None) -> User:
    """Create the unconfirmed identity, or refresh credentials on an existing unconfirmed one."""
    user = get_user_by_email(db, email)
    if user and user.email_verified:
        raise AlreadyConfirmed("An account with this email already exists. Try signing in instead.")
    hashed = get_password_hash(password)
    if user:
        user.hashed_password = hashed
        if full_name:
            user.full_name = full_name
    else:
        user = User(email=email, hashed_password=hashed, full_name=full_name or None, email_verified=False)
        db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        # Another request created the same email between lookup and insert
        db.rollback()
        raise UpstreamIdentityError("Could not create your account. Please try again.") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamIdentityError("Could not update your account. Please try again.") from e
    db.refresh(user)
    return user


def issue_verification_code(
    db: Session,
    email: str | None,
    password: str | None,
    full_name: str | None = None,
    *,
    now: datetime | None = None,
) -> None:
    """Create or reuse the pending identity and send it a fresh code. Any earlier code stops working."""
    email = normalize_email(email)
    if not email or not password:
        raise ValidationError("Email and password are required")
    full_name = (full_name or "").strip() or None
    settings = get_settings()

    user = _upsert_pending_identity(db, email, password, full_name)

    now = now or _utcnow()
    code = generate_code()
    expires_at = now + timedelta(minutes=settings.verification_code_expire_minutes)
    code_store.upsert_challenge(db, email, code, expires_at)

    # Not rolled back on failure: the next issue call overwrites the challenge.
    if not send_verification_email(email, code, full_name=user.full_name):
        log.warning("[Verification] Email not sent to %s; challenge kept for retry", email)
        raise UpstreamIdentityError("Failed to send verification email. Please try again.")
    log.info("[Verification] Code issued for %s (user_id=%s)", email, user.id)


def _record_failed_attempt(db: Session, email: str, reason: str, request_meta: dict | None) -> None:
    log_failed_verification(db, email, reason, request_meta)
    db.commit()


def redeem_verification_code(
    db: Session,
    email: str | None,
    code: str | None,
    password: str | None = None,
    *,
    now: datetime | None = None,
    request_meta: dict | None = None,
) -> dict:
    """Check a submitted code. On match the identity is confirmed for good, even if sign-in then fails."""
    email = normalize_email(email)
    submitted = (code or "").strip()
    if not email or not submitted:
        raise ValidationError("Email and code are required")
    max_attempts = get_settings().verification_max_attempts

    challenge = code_store.get_challenge(db, email)
    if challenge is None:
        raise NotFound("No verification code found. Please request a new one.")

    if challenge.attempts >= max_attempts:
        code_store.delete_challenge(db, email)
        _record_failed_attempt(db, email, "too_many_attempts", request_meta)
        raise TooManyAttempts("Too many attempts. Please request a new code.")

    state = code_store.consume_attempt(db, email, max_attempts)
    if state is None:
        # Lost a race with a concurrent redemption of the same challenge
        if code_store.get_challenge(db, email) is None:
            raise NotFound("No verification code found. Please request a new one.")
        code_store.delete_challenge(db, email)
        _record_failed_attempt(db, email, "too_many_attempts", request_meta)
        raise TooManyAttempts("Too many attempts. Please request a new code.")

    now = now or _utcnow()
    if now > code_store.as_utc(state.expires_at):
        code_store.delete_challenge(db, email)
        _record_failed_attempt(db, email, "expired_code", request_meta)
        raise Expired("Code has expired. Please request a new one.")

    if not _codes_match(submitted, state.code):
        _record_failed_attempt(db, email, "invalid_code", request_meta)
        raise CodeMismatch(remaining=max(max_attempts - state.attempts, 0))

    user = get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found. Please sign up again.")

    if not user.email_verified:
        user.email_verified = True
        user.email_verified_at = now
        create_log(
            db,
            CATEGORY_STATUS_CHANGE,
            "Email confirmed",
            f"Email {email} confirmed with verification code.",
            actor_user_id=user.id,
            actor_email=email,
        )
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Failed to confirm email. Please try again.") from e
    code_store.delete_challenge(db, email)
    log.info("[Verification] Email confirmed for %s (user_id=%s)", email, user.id)

    session = sign_in_with_password(db, email, password) if password else None
    if session is None:
        return {"verified": True, "session": None, "message": CONFIRMED_SIGN_IN_MESSAGE}
    return {"verified": True, "session": session}
