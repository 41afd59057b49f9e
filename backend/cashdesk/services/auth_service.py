# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every till movement must be attributable. Uses bcrypt for secure
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re
from ..extensions import db
from ..models import User, Role, UserRole
from ..permissions import DEFAULT_ROLE_PERMISSIONS, DEFAULT_ROLE_DESCRIPTIONS
from cashdesk.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash (timing-safe)."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    first_name: str = "",
    last_name: str = "",
    role_name: str | None = None,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises PasswordValidationError for weak passwords and ValueError for
    duplicate username/email or unknown role.
    """
    if db.session.query(User).filter_by(username=username).first():
        raise ValueError(f"Username '{username}' already exists")

    if db.session.query(User).filter_by(email=email).first():
        raise ValueError(f"Email '{email}' already exists")

    user = User(
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    if role_name:
        assign_role(user.id, role_name, commit=False)

    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns None for unknown users, inactive users, or wrong passwords.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier)
    ).first()

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def create_default_roles() -> int:
    """
    Create admin, supervisor, cashier and waiter roles.

    Idempotent: Safe to run multiple times.
    """
    created = 0
    for role_name in DEFAULT_ROLE_PERMISSIONS:
        if db.session.query(Role).filter_by(name=role_name).first():
            continue
        db.session.add(Role(name=role_name, description=DEFAULT_ROLE_DESCRIPTIONS.get(role_name)))
        created += 1
    db.session.commit()
    return created


def assign_role(user_id: int, role_name: str, *, commit: bool = True) -> UserRole:
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return user_role
