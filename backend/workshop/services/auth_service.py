# Overview: User accounts and organization membership used to build the tenant context.

"""
Account bootstrap for the workshop API.

Login and registration endpoints are not part of this service; accounts
are created from the CLI and sessions are issued by session_service.
Passwords are hashed with bcrypt (cost factor BCRYPT_ROUNDS, 12 by default).
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Organization, OrganizationMember
from ..models.tenancy import ROLES, ROLE_MEMBER


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountError(Exception):
    """Raised for invalid account or membership operations."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt (BCRYPT_ROUNDS, default 12; strength validated first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(email: str, name: str, password: str) -> User:
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise AccountError(f"User with email '{email}' already exists")

    user = User(email=email, name=name.strip(), password_hash=hash_password(password), is_active=True)
    db.session.add(user)
    db.session.flush()
    return user


def add_member(org_id: int, user_id: int, role: str = ROLE_MEMBER) -> OrganizationMember:
    """Add (or re-role) a user in an organization. Idempotent."""
    if role not in ROLES:
        raise AccountError(f"role must be one of: {', '.join(ROLES)}")

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise AccountError(f"Organization {org_id} not found")

    member = db.session.query(OrganizationMember).filter_by(org_id=org_id, user_id=user_id).first()
    if member:
        member.role = role
    else:
        member = OrganizationMember(org_id=org_id, user_id=user_id, role=role)
        db.session.add(member)
    db.session.flush()
    return member


def get_membership(org_id: int, user_id: int) -> OrganizationMember | None:
    return db.session.query(OrganizationMember).filter_by(org_id=org_id, user_id=user_id).first()
