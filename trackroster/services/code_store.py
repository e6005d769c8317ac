"""Storage primitives for verification challenges.

Every write is a single statement, committed immediately:
- upsert replaces any live code for the email and resets attempts,
- consume_attempt increments attempts only while below the limit, so concurrent
  redemptions serialize on the row and at most `max_attempts` calls ever pass.
"""
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trackroster.exceptions import StorageError
from trackroster.models.verification_code import VerificationCode


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise StorageError(f"Verification codes are not supported on the {name} backend.")
    return insert


def upsert_challenge(db: Session, email: str, code: str, expires_at: datetime) -> None:
    insert = _dialect_insert(db)
    stmt = insert(VerificationCode).values(email=email, code=code, expires_at=expires_at, attempts=0)
    stmt = stmt.on_conflict_do_update(
        index_elements=[VerificationCode.email],
        set_={"code": stmt.excluded.code, "expires_at": stmt.excluded.expires_at, "attempts": 0},
    )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Failed to generate verification code") from e


def get_challenge(db: Session, email: str) -> VerificationCode | None:
    try:
        return db.query(VerificationCode).filter(VerificationCode.email == email).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Failed to look up verification code") from e


def consume_attempt(db: Session, email: str, max_attempts: int):
    """Count one redemption attempt. Returns (code, expires_at, attempts) after the increment,
    or None when the challenge is gone or already exhausted."""
    stmt = (
        update(VerificationCode)
        .where(VerificationCode.email == email, VerificationCode.attempts < max_attempts)
        .values(attempts=VerificationCode.attempts + 1)
        .returning(VerificationCode.code, VerificationCode.expires_at, VerificationCode.attempts)
        .execution_options(synchronize_session=False)
    )
    try:
        row = db.execute(stmt).first()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Failed to record verification attempt") from e
    return row


def delete_challenge(db: Session, email: str) -> None:
    try:
        db.query(VerificationCode).filter(VerificationCode.email == email).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Failed to delete verification code") from e
