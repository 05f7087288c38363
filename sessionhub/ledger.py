import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sessionhub.clock import as_utc, utcnow
from sessionhub.errors import ErrorCode, Outcome
from sessionhub.lifecycle import TimeStatus, session_status
from sessionhub.models import ActorSession, Session as SessionModel

logger = logging.getLogger(__name__)


class MembershipLedger:
    """
    Join and leave sessions under the attendee limit.

    A join locks the session row (SELECT ... FOR UPDATE; BEGIN IMMEDIATE
    on SQLite) before counting, so two joins racing for the last slot
    are serialized and only one of them sees a free slot. The unique
    (actor_id, session_id) constraint rejects duplicate memberships.
    """

    def __init__(self, db: Session):
        self.db = db

    def join(self, session_id: int, actor_id: int, now: Optional[datetime] = None) -> Outcome:
        now = as_utc(now) if now else utcnow()

        try:
            session = self.db.query(SessionModel).filter(
                SessionModel.id == session_id
            ).with_for_update().first()

            denial = self._check_joinable(session, actor_id, now)
            if denial is not None:
                self.db.rollback()
                logger.info(
                    "Join rejected for actor %s, session %s: %s", actor_id, session_id, denial.error.message
                )
                return denial

            membership = ActorSession(actor_id=actor_id, session_id=session_id, joined_at=now)
            self.db.add(membership)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return Outcome.fail("id", "already part of this session", ErrorCode.CONFLICT)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(membership)
        logger.info("Actor %s joined session %s", actor_id, session_id)
        return Outcome.success(membership)

    def leave(self, session_id: int, actor_id: int) -> Outcome:
        """
        Always allowed for a member, whatever the session's state.
        """
        removed = self.db.query(ActorSession).filter(
            ActorSession.session_id == session_id,
            ActorSession.actor_id == actor_id,
        ).delete(synchronize_session=False)
        self.db.commit()

        if not removed:
            return Outcome.fail("id", "not part of this session", ErrorCode.NOT_FOUND)

        logger.info("Actor %s left session %s", actor_id, session_id)
        return Outcome.success(True)

    def is_member(self, session_id: int, actor_id: Optional[int]) -> bool:
        if actor_id is None:
            return False
        return self.db.query(ActorSession.id).filter(
            ActorSession.session_id == session_id,
            ActorSession.actor_id == actor_id,
        ).first() is not None

    def count(self, session_id: int) -> int:
        return self.db.query(func.count(ActorSession.id)).filter(
            ActorSession.session_id == session_id
        ).scalar()

    def _check_joinable(self, session: Optional[SessionModel], actor_id: int, now: datetime) -> Optional[Outcome]:
        if not session:
            return Outcome.fail("id", "session not found", ErrorCode.NOT_FOUND)
        if session.creator_id == actor_id:
            return Outcome.fail("id", "the creator cannot join their own session", ErrorCode.PERMISSION)
        if session.is_cancelled:
            return Outcome.fail("id", "session is cancelled", ErrorCode.PERMISSION)
        if session_status(session, now) == TimeStatus.PAST:
            return Outcome.fail("id", "session is already over", ErrorCode.PERMISSION)
        if self.is_member(session.id, actor_id):
            return Outcome.fail("id", "already part of this session", ErrorCode.CONFLICT)
        if self.count(session.id) >= session.attendee_limit:
            return Outcome.fail("id", "session is full", ErrorCode.CAPACITY)
        return None
