from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint,
)
from sessionhub.clock import utcnow
from sessionhub.database import Base


class Actor(Base):
    """
    Registered identity. Stores credentials and metadata.
    
    Design notes:
    - name and email keep the casing the actor chose; the lower-cased
      copies carry the unique constraints so "Bob" and "bob" collide
    - password_hash never leaves the database layer
    - destroyed only by account erasure
    """
    __tablename__ = "actors"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), nullable=False)
    lower_case_name = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    lower_case_email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Actor(id={self.id}, name={self.name})>"


class AuthSession(Base):
    """
    Server-side session storage backing the session cookie.
    
    Session lifecycle:
    1. Created on signup, login or password recovery with random session_id
    2. Validated on each request against expires_at
    3. Deleted on logout, expiration or account erasure
    """
    __tablename__ = "auth_sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("actors.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    
    __table_args__ = (
        Index('ix_auth_session_lookup', 'session_id', 'expires_at'),
    )
    
    def __repr__(self):
        return f"<AuthSession(id={self.id}, actor_id={self.actor_id})>"


class Session(Base):
    """
    A scheduled event owned by its creator.
    
    Only start, end and is_cancelled are stored. Time status and
    attendee count are derived on read.
    """
    __tablename__ = "sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False, default="")
    start = Column(DateTime(timezone=True), nullable=False)
    end = Column(DateTime(timezone=True), nullable=False)
    attendee_limit = Column(Integer, nullable=False)
    creator_id = Column(Integer, ForeignKey("actors.id", ondelete="CASCADE"), nullable=False, index=True)
    is_cancelled = Column(Boolean, nullable=False, default=False)
    voice_channel_url = Column(String(512), nullable=True)
    # Python-side default keeps microsecond precision for cursor pagination
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    
    __table_args__ = (
        CheckConstraint('attendee_limit >= 1', name='check_attendee_limit_positive'),
        CheckConstraint('"end" > start', name='check_end_after_start'),
    )
    
    def __repr__(self):
        return f"<Session(id={self.id}, title={self.title})>"


class ActorSession(Base):
    """
    Membership of an actor in a session.
    
    The composite unique constraint makes a second join by the same
    actor fail at the storage layer.
    """
    __tablename__ = "actor_sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("actors.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    
    __table_args__ = (
        UniqueConstraint('actor_id', 'session_id', name='unique_actor_session'),
    )


class SessionComment(Base):
    __tablename__ = "session_comments"
    
    id = Column(Integer, primary_key=True, index=True)
    text = Column(Text, nullable=False)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("actors.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class VoiceChannelLink(Base):
    """
    Identity of an actor at the voice-channel provider.
    
    The OAuth exchange that creates these rows lives outside this
    service; only lookup and deletion happen here.
    """
    __tablename__ = "voice_channel_links"
    
    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("actors.id", ondelete="CASCADE"), unique=True, nullable=False)
    provider_user_id = Column(String(64), nullable=False)
    access_token = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
