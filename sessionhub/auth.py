import logging
import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sessionhub.clock import utcnow
from sessionhub.config import get_settings
from sessionhub.models import AuthSession

logger = logging.getLogger(__name__)
settings = get_settings()


def generate_session_id() -> str:
    """
    Generate cryptographically secure session identifier.
    
    Uses 32 bytes (256 bits) of randomness, hex encoded.
    """
    return secrets.token_hex(32)


def _digest(session_id: str) -> str:
    """
    Keyed hash of the cookie value; only the digest is stored, so a copy
    of the auth_sessions table cannot be replayed as cookies.
    """
    return hmac.new(
        settings.session_secret_key.encode(), session_id.encode(), hashlib.sha256
    ).hexdigest()


class RequestContext:
    """
    Identity of one request, resolved from the session cookie.
    
    Built once per request by the transport and passed explicitly into
    every core call. The actor id is read from the server-side session
    row, never from anything the client sends.
    
    After a call, `session_id` holds the cookie value the response should
    carry; None means the cookie must be cleared.
    """
    
    def __init__(self, db: Session, session_id: Optional[str] = None):
        self.db = db
        self.session_id = session_id
        self._actor_id: Optional[int] = None
        self._resolved = False
    
    def current_actor_id(self) -> Optional[int]:
        if not self._resolved:
            self._actor_id = _lookup_actor_id(self.db, self.session_id) if self.session_id else None
            self._resolved = True
        return self._actor_id
    
    @property
    def is_authenticated(self) -> bool:
        return self.current_actor_id() is not None
    
    def bind(self, actor_id: int) -> str:
        """
        Start a new server-side session for actor_id.
        
        Any session this context already carried is dropped first so a
        login never inherits a previous identity's session id.
        """
        if self.session_id:
            delete_session(self.db, self.session_id)
        self.session_id = create_session(self.db, actor_id)
        self._actor_id = actor_id
        self._resolved = True
        return self.session_id
    
    def destroy(self) -> bool:
        """
        End the current session. Idempotent.
        
        The binding is cleared on this context even when the store
        delete fails; the failure is reported through the return value.
        """
        session_id = self.session_id
        self.session_id = None
        self._actor_id = None
        self._resolved = True
        if not session_id:
            return True
        try:
            delete_session(self.db, session_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to destroy server-side session", exc_info=True)
            return False
        return True
    
    def forget(self) -> None:
        """Drop the binding locally after its row was removed elsewhere."""
        self.session_id = None
        self._actor_id = None
        self._resolved = True


def create_session(db: Session, actor_id: int) -> str:
    """
    Create new session for actor.
    
    Returns session_id to be stored in cookie.
    Session expires after configured duration. Expired rows of every
    actor are pruned in the same transaction.
    """
    cleanup_expired_sessions(db, commit=False)
    
    session_id = generate_session_id()
    expires_at = utcnow() + timedelta(hours=settings.session_expire_hours)
    
    db.add(AuthSession(
        session_id=_digest(session_id),
        actor_id=actor_id,
        expires_at=expires_at
    ))
    db.commit()
    
    return session_id


def _lookup_actor_id(db: Session, session_id: str) -> Optional[int]:
    """
    Returns None if the session doesn't exist or is expired.
    """
    session = db.query(AuthSession).filter(
        AuthSession.session_id == _digest(session_id),
        AuthSession.expires_at > utcnow()
    ).first()
    
    return session.actor_id if session else None


def delete_session(db: Session, session_id: str) -> bool:
    """
    Delete session (logout).
    
    Returns True if session was deleted, False if not found.
    """
    result = db.query(AuthSession).filter(
        AuthSession.session_id == _digest(session_id)
    ).delete()
    
    db.commit()
    return result > 0


def delete_actor_sessions(db: Session, actor_id: int, commit: bool = True) -> int:
    """
    Delete all sessions for an actor.
    
    Used after password recovery and by account erasure, which passes
    commit=False to keep the delete inside its own transaction.
    Returns number of sessions deleted.
    """
    result = db.query(AuthSession).filter(
        AuthSession.actor_id == actor_id
    ).delete()
    
    if commit:
        db.commit()
    return result


def cleanup_expired_sessions(db: Session, commit: bool = True) -> int:
    """
    Remove expired sessions from database.
    
    Runs on every login; returns number of sessions cleaned up.
    """
    result = db.query(AuthSession).filter(
        AuthSession.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    
    if commit:
        db.commit()
    return result
