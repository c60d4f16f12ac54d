# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service with Multi-Tenant Support

Sessions bind a user to one organization. The (user, organization, role)
triple resolved from a token is the tenant context every workshop
operation trusts.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_TTL_HOURS) and idle timeout (SESSION_IDLE_MINUTES)
- Revocable; membership removal or deactivation revokes on next use
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, Organization
from ..time_utils import utcnow
from .auth_service import get_membership


@dataclass
class SessionContext:
    """
    Complete session context returned by validate_session.

    role is read from the live membership row, so demoting a member takes
    effect on the next request.
    """
    user: User
    session: SessionToken
    org_id: int
    role: str


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient here: tokens are already high-entropy."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", 120))


def create_session(user_id: int, org_id: int) -> tuple[SessionToken, str]:
    """
    Create new session token for a user working in an organization.

    Returns (session_record, plaintext_token).
    Raises ValueError if the user is not an active member of an active organization.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        raise ValueError("User not found")

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org or not org.is_active:
        raise ValueError("Organization is not active")

    if get_membership(org_id, user_id) is None:
        raise ValueError("User is not a member of this organization")

    plaintext_token = generate_token()

    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        org_id=org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _ttl(),
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle, revoked, or the
    user, organization or membership is no longer valid.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = db.session.query(User).filter_by(id=session.user_id).first()
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    org = db.session.query(Organization).filter_by(id=session.org_id).first()
    if not org or not org.is_active:
        _revoke(session, "Organization deactivated")
        return None

    member = get_membership(session.org_id, user.id)
    if member is None:
        _revoke(session, "Membership removed")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, org_id=session.org_id, role=member.role)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
