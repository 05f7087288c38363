import logging
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sessionhub.auth import RequestContext, delete_actor_sessions
from sessionhub.config import get_settings
from sessionhub.errors import ErrorCode, FatalStoreError, Outcome
from sessionhub.lifecycle import delete_sessions_cascade
from sessionhub.models import (
    Actor, ActorSession, Session as SessionModel, SessionComment, VoiceChannelLink,
)

logger = logging.getLogger(__name__)
settings = get_settings()


class AccountErasureCoordinator:
    """
    Remove an actor and everything it owns or takes part in.

    All deletes run in one transaction. A failed attempt is rolled back
    whole and retried; when every attempt fails FatalStoreError is raised
    and the actor stays fully intact.
    """

    def __init__(self, db: Session, max_attempts: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.erasure_max_attempts

    def erase_account(self, actor_id: int, ctx: Optional[RequestContext] = None) -> Outcome:
        if not self.db.query(Actor.id).filter(Actor.id == actor_id).first():
            return Outcome.fail("id", "user does not exist", ErrorCode.NOT_FOUND)
        # Release the read transaction before the erasure opens its own
        self.db.rollback()

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._erase(actor_id)
                self.db.commit()
                break
            except SQLAlchemyError as e:
                self.db.rollback()
                last_error = e
                logger.warning(
                    "Erasure of actor %s failed on attempt %s/%s: %s", actor_id, attempt, self.max_attempts, e
                )
        else:
            logger.error("Erasure of actor %s could not complete", actor_id, exc_info=last_error)
            raise FatalStoreError(f"erasure of actor {actor_id} could not complete") from last_error

        # The server-side session row went with the transaction
        if ctx is not None:
            ctx.forget()

        logger.info("Actor %s erased", actor_id)
        return Outcome.success(True)

    def _erase(self, actor_id: int) -> None:
        db = self.db

        db.query(SessionComment).filter(
            SessionComment.creator_id == actor_id
        ).delete(synchronize_session=False)

        db.query(ActorSession).filter(
            ActorSession.actor_id == actor_id
        ).delete(synchronize_session=False)

        owned = [row.id for row in db.query(SessionModel.id).filter(SessionModel.creator_id == actor_id)]
        delete_sessions_cascade(db, owned)

        db.query(VoiceChannelLink).filter(
            VoiceChannelLink.actor_id == actor_id
        ).delete(synchronize_session=False)

        delete_actor_sessions(db, actor_id, commit=False)

        db.query(Actor).filter(Actor.id == actor_id).delete(synchronize_session=False)
