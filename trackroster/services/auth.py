"""Identity platform: password hashing, access tokens, sign-in."""
from datetime import datetime, timedelta, timezone
import bcrypt
import jwt
from sqlalchemy.orm import Session

from trackroster.config import get_settings
from trackroster.models.user import User


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _pwd_bytes(password: str, max_len: int = 72) -> bytes:
    return password.encode("utf-8")[:max_len]


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt()).decode("utf-8")


def create_access_token(user: User) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    # PyJWT expects "sub" to be a string
    payload = {"sub": str(user.id), "email": user.email, "exp": expire}
    raw = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return raw if isinstance(raw, str) else raw.decode("utf-8")


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Decode JWT; returns (payload, error_message)."""
    if not token or not isinstance(token, str):
        return None, "empty token"
    settings = get_settings()
    try:
        payload = jwt.decode(token.strip(), settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return payload, None
    except jwt.ExpiredSignatureError as e:
        return None, str(e)
    except jwt.PyJWTError as e:
        return None, str(e)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def sign_in_with_password(db: Session, email: str, password: str) -> dict | None:
    """Mint a session for a confirmed identity. Returns None when sign-in is not possible."""
    user = get_user_by_email(db, email)
    if not user or not user.email_verified:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    settings = get_settings()
    return {
        "access_token": create_access_token(user),
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
        "user": {"id": user.id, "email": user.email, "full_name": user.full_name},
    }
