import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from elibrary import auth, models
from elibrary.exceptions import (
    AuthenticationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _find_by_email(db: Session, email: str) -> models.User | None:
    try:
        return db.query(models.User).filter(models.User.email == email).first()
    except SQLAlchemyError as exc:
        logger.error(f"Error looking up user {email}: {exc}")
        raise DependencyError("Error while getting user") from exc


def register_user(db: Session, name: str, email: str, password: str) -> str:
    """Create a user and return a signed access token for it."""
    if not name or not name.strip() or not email or not password:
        raise ValidationError("All fields are required")

    if _find_by_email(db, email):
        raise ConflictError("User already exists with this email")

    new_user = models.User(
        name=name.strip(),
        email=email,
        password=auth.hash_password(password),
    )
    try:
        db.add(new_user)
        db.commit()
        db.refresh(new_user)
    except IntegrityError as exc:
        # a concurrent registration won the unique email index
        db.rollback()
        raise ConflictError("User already exists with this email") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Error creating user {email}: {exc}")
        raise DependencyError("Error while creating user") from exc

    logger.info(f"Registered user {new_user.id}")
    return auth.create_access_token(new_user.id)


def login_user(db: Session, email: str, password: str) -> str:
    if not email or not password:
        raise ValidationError("All fields are required")

    db_user = _find_by_email(db, email)
    if not db_user:
        raise NotFoundError("User not found")

    if not auth.verify_password(password, db_user.password):
        raise AuthenticationError("Username or password incorrect", status_code=400)

    return auth.create_access_token(db_user.id)
