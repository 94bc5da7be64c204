import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.models.user import ActivityLog, User
from storefront.services.errors import DuplicateError

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "phone", "address", "city", "postal_code", "country")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_access_token(user_id: str, email: str, role: str = "user") -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError):
        return None


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == _normalize_email(email), User.active == True).first()  # noqa: E712
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == _normalize_email(email)).first()


def register(db: Session, email: str, password: str, full_name: str = "", **profile) -> User:
    """Create an account, or claim the passwordless guest profile left by an earlier checkout."""
    user = get_user_by_email(db, email)
    if user and user.password_hash:
        raise DuplicateError("User already exists")
    if user is None:
        user = User(email=_normalize_email(email), role="user")
        db.add(user)
    user.password_hash = hash_password(password)
    if full_name:
        user.full_name = full_name
    for key in PROFILE_FIELDS:
        if profile.get(key):
            setattr(user, key, profile[key])
    db.commit()
    db.refresh(user)
    return user


def create_user(db: Session, email: str, password: str, full_name: str = "", role: str = "user") -> User:
    if get_user_by_email(db, email):
        raise DuplicateError(f"Email '{email}' already exists")
    user = User(
        email=_normalize_email(email),
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_profile(db: Session, user: User, data: dict) -> User:
    email = data.get("email")
    if email and _normalize_email(email) != user.email:
        other = get_user_by_email(db, email)
        if other and other.id != user.id:
            raise DuplicateError("Email already in use")
        user.email = _normalize_email(email)
    for key in PROFILE_FIELDS:
        if data.get(key) is not None:
            setattr(user, key, data[key])
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValueError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.commit()


def list_customers(db: Session) -> list[User]:
    return db.query(User).filter(User.role != "admin").order_by(User.created_at.desc()).all()


def delete_user(db: Session, user: User) -> None:
    if user.is_admin:
        raise ValueError("Cannot delete an admin user")
    db.delete(user)
    db.commit()


def delete_users(db: Session, user_ids: list[str]) -> int:
    """Delete the given customers; admin accounts in the list are left alone."""
    users = db.query(User).filter(User.id.in_(user_ids), User.role != "admin").all()
    for u in users:
        db.delete(u)
    db.commit()
    return len(users)


def ensure_default_admin(db: Session) -> None:
    """Create the bootstrap admin if no admin exists and a password is configured."""
    if db.query(User).filter(User.role == "admin").count():
        return
    if not settings.DEFAULT_ADMIN_PASSWORD:
        logger.warning("No admin account and DEFAULT_ADMIN_PASSWORD is empty; skipping bootstrap")
        return
    create_user(db, settings.DEFAULT_ADMIN_EMAIL, settings.DEFAULT_ADMIN_PASSWORD, "Admin", role="admin")
    logger.info("Created bootstrap admin %s", settings.DEFAULT_ADMIN_EMAIL)


# Activity logging

def log_activity(db: Session, user_id: str, email: str, action: str, detail: str = "", ip: str = "") -> None:
    entry = ActivityLog(
        user_id=user_id,
        email=email,
        action=action,
        detail=detail,
        ip_address=ip,
    )
    db.add(entry)
    db.commit()


def get_activity_logs(db: Session, limit: int = 100, user_id: str | None = None) -> list[ActivityLog]:
    q = db.query(ActivityLog)
    if user_id:
        q = q.filter(ActivityLog.user_id == user_id)
    return q.order_by(ActivityLog.created_at.desc()).limit(limit).all()
