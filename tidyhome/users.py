import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .auth import (
    hash_password,
    normalize_email,
    password_errors,
    sanitize_input,
    validate_email,
    verify_password,
)
from .errors import ValidationFailed
from .models import User
from .schemas import RegisterPayload

logger = logging.getLogger(__name__)


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == normalize_email(email))).first()


def register_user(session: Session, payload: RegisterPayload) -> User:
    name = sanitize_input(payload.name)
    email = normalize_email(sanitize_input(payload.email))
    password = payload.password or ""
    if not name or not email or not password:
        raise ValidationFailed("Missing required fields")
    if not validate_email(email):
        raise ValidationFailed("Invalid email address")
    errors = password_errors(password)
    if errors:
        raise ValidationFailed("Password requirements not met", errors=errors)
    if get_user_by_email(session, email):
        raise ValidationFailed("User already exists")
    user = User(name=name, email=email, hashed_password=hash_password(password))
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # lost a race against a concurrent registration for the same address
        session.rollback()
        raise ValidationFailed("User already exists")
    session.refresh(user)
    logger.info("registered user %s", user.id)
    return user


def authenticate(session: Session, email: Optional[str], password: Optional[str]) -> Optional[User]:
    if not email or not password:
        return None
    user = get_user_by_email(session, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user
