# Overview: Staff accounts, password hashing and login.

"""
Passwords are hashed with bcrypt. Every stock change is attributed to the
authenticated user, so accounts are personal and never shared.
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLES
from bakery.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Le mot de passe doit contenir au moins 8 caractères")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Le mot de passe doit contenir au moins une lettre")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Le mot de passe doit contenir au moins un chiffre")


def hash_password(password: str) -> str:
    """Hash password using bcrypt; cost factor comes from BCRYPT_ROUNDS."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    full_name: str | None = None,
) -> User:
    """
    Create a staff account.

    Raises:
        ValueError: unknown role, or username/email already taken
        PasswordValidationError: weak password
    """
    if role not in ROLES:
        raise ValueError(f"Rôle inconnu: {role}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Nom d'utilisateur ou email déjà utilisé")

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User and stamps last_login_at on success, None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def deactivate_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("Utilisateur introuvable")
    user.is_active = False
    db.session.commit()
    return user
