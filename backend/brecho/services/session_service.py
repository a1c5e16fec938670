# Overview: Service-layer operations for session tokens; issue, validate and revoke.

"""
Session Token Management

Tokens are random, stored only as a SHA-256 hash, and time-limited.

Sessions capture shop_id at creation time. That is the tenant context for
every authenticated request and it does not change for the life of the
session.

SECURITY FEATURES:
- 32 bytes of entropy per token (64 hex characters)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout, password change or deactivation
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta
from ..extensions import db
from ..models import SessionToken, User, Shop
from brecho.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


class SessionError(ValueError):
    """Raised when a session cannot be opened for a user."""


@dataclass
class SessionContext:
    """Identity and tenant context resolved from a valid token."""
    user: User
    session: SessionToken
    shop_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest of a token.

    Tokens are already high-entropy, so a fast hash is enough here.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for a user.

    Returns (session_record, plaintext_token). Only the hash is stored.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise SessionError("User not found")

    shop = db.session.query(Shop).filter_by(id=user.shop_id).first()
    if not shop or not shop.is_active:
        raise SessionError("Shop is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        shop_id=user.shop_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a token to its SessionContext.

    Returns None if the token is unknown, expired, revoked or idle for too
    long, or if the user or the shop has been deactivated. Updates
    last_used_at on success.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    shop = session.shop
    if not shop or not shop.is_active:
        _revoke(session, "Shop deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, shop_id=session.shop_id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one session. Returns False when the token is unknown or already revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(
    user_id: int,
    reason: str = "Revoke all sessions",
    except_session_id: int | None = None,
) -> int:
    """
    Revoke every active session of a user, optionally keeping one.

    Returns the number of sessions revoked.
    """
    query = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False
    )
    if except_session_id is not None:
        query = query.filter(SessionToken.id != except_session_id)

    count = 0
    for session in query.all():
        _revoke(session, reason)
        count += 1

    db.session.commit()
    return count


def cleanup_expired_sessions(retention_days: int = 30) -> int:
    """
    Delete sessions that are expired or revoked and older than the
    retention window. Returns the number deleted.
    """
    now = utcnow()
    cutoff = now - timedelta(days=retention_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
