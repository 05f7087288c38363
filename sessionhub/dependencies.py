from functools import lru_cache
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from sessionhub.auth import RequestContext
from sessionhub.comments import CommentBoard
from sessionhub.config import get_settings
from sessionhub.database import get_db
from sessionhub.directory import ActorDirectory
from sessionhub.email import EmailSender, get_email_sender
from sessionhub.erasure import AccountErasureCoordinator
from sessionhub.ledger import MembershipLedger
from sessionhub.lifecycle import SessionLifecycle
from sessionhub.tokens import ExpiringTokenStore, get_redis_client

settings = get_settings()


@lru_cache
def _shared_token_store() -> ExpiringTokenStore:
    return ExpiringTokenStore(get_redis_client())


def get_token_store() -> ExpiringTokenStore:
    return _shared_token_store()


def get_mailer() -> EmailSender:
    return get_email_sender()


def get_request_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    """
    Resolve the caller's identity once per request from the session cookie.
    """
    return RequestContext(db, request.cookies.get(settings.cookie_name))


def get_current_actor_id(ctx: RequestContext = Depends(get_request_context)) -> int:
    """
    Require an authenticated caller. Returns 401 otherwise.
    """
    actor_id = ctx.current_actor_id()
    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return actor_id


def get_directory(
    db: Session = Depends(get_db),
    tokens: ExpiringTokenStore = Depends(get_token_store),
    mailer: EmailSender = Depends(get_mailer),
) -> ActorDirectory:
    return ActorDirectory(db, tokens, mailer)


def get_lifecycle(db: Session = Depends(get_db)) -> SessionLifecycle:
    return SessionLifecycle(db)


def get_ledger(db: Session = Depends(get_db)) -> MembershipLedger:
    return MembershipLedger(db)


def get_comment_board(db: Session = Depends(get_db)) -> CommentBoard:
    return CommentBoard(db)


def get_erasure_coordinator(db: Session = Depends(get_db)) -> AccountErasureCoordinator:
    return AccountErasureCoordinator(db)
