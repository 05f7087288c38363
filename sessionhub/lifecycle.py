import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session
from sessionhub.clock import as_utc, utcnow
from sessionhub.config import get_settings
from sessionhub.errors import ErrorCode, FieldError, Outcome
from sessionhub.models import ActorSession, Session as SessionModel, SessionComment

logger = logging.getLogger(__name__)
settings = get_settings()

TITLE_MAX_LENGTH = 255
SNIPPET_LENGTH = 50
EDITABLE_FIELDS = ("title", "body", "start", "end", "attendee_limit", "voice_channel_url")
CURSOR_SEPARATOR = "_"


class TimeStatus(str, Enum):
    UPCOMING = "UPCOMING"
    ONGOING = "ONGOING"
    PAST = "PAST"


STATUS_ORDER = {TimeStatus.UPCOMING: 0, TimeStatus.ONGOING: 1, TimeStatus.PAST: 2}


class LifecycleState(str, Enum):
    SCHEDULED = "SCHEDULED"
    ONGOING = "ONGOING"
    CANCELLED = "CANCELLED"
    PAST = "PAST"


def compute_status(start: datetime, end: datetime, now: datetime) -> TimeStatus:
    """
    Time status from (start, end, now) alone. Never stored.
    """
    start, end, now = as_utc(start), as_utc(end), as_utc(now)
    if now < start:
        return TimeStatus.UPCOMING
    if now < end:
        return TimeStatus.ONGOING
    return TimeStatus.PAST


def session_status(session: SessionModel, now: Optional[datetime] = None) -> TimeStatus:
    return compute_status(session.start, session.end, now or utcnow())


def lifecycle_state(session: SessionModel, now: Optional[datetime] = None) -> LifecycleState:
    """
    Combine the cancellation flag with the clock. PAST wins over CANCELLED.
    """
    status = session_status(session, now)
    if status == TimeStatus.PAST:
        return LifecycleState.PAST
    if session.is_cancelled:
        return LifecycleState.CANCELLED
    if status == TimeStatus.ONGOING:
        return LifecycleState.ONGOING
    return LifecycleState.SCHEDULED


def text_snippet(body: str) -> str:
    return (body or "")[:SNIPPET_LENGTH]


def session_cursor(session: SessionModel) -> str:
    """Opaque page cursor pointing just past session."""
    return f"{as_utc(session.created_at).isoformat()}{CURSOR_SEPARATOR}{session.id}"


@dataclass(frozen=True)
class Capabilities:
    can_edit: bool = False
    can_cancel: bool = False
    can_delete: bool = False
    can_join: bool = False
    can_leave: bool = False
    can_comment: bool = False
    can_join_voice: bool = False


def capabilities_for(
    actor_id: Optional[int],
    session: SessionModel,
    is_member: bool,
    attendee_count: int,
    now: Optional[datetime] = None,
) -> Capabilities:
    """
    What actor_id may do with session right now.

    The creator holds no membership row and never counts toward the
    attendee limit; it is a participant for comments and voice only.
    """
    if actor_id is None:
        return Capabilities()

    state = lifecycle_state(session, now)
    is_creator = session.creator_id == actor_id
    is_open = state in (LifecycleState.SCHEDULED, LifecycleState.ONGOING)

    return Capabilities(
        can_edit=is_creator and is_open,
        can_cancel=is_creator and is_open,
        can_delete=is_creator,
        can_join=(
            not is_creator
            and not is_member
            and is_open
            and attendee_count < session.attendee_limit
        ),
        can_leave=is_member,
        can_comment=True,
        can_join_voice=(is_creator or is_member) and is_open and bool(session.voice_channel_url),
    )


class SessionPage(NamedTuple):
    sessions: List[SessionModel]
    has_more: bool


def _validate_fields(
    title: str,
    start: datetime,
    end: datetime,
    attendee_limit: int,
    now: datetime,
    check_start: bool = True,
) -> List[FieldError]:
    errors = []
    if not title or not title.strip():
        errors.append(FieldError("title", "title cannot be empty"))
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append(FieldError("title", f"title can be at most {TITLE_MAX_LENGTH} characters long"))
    if check_start and as_utc(start) <= now:
        errors.append(FieldError("start", "Time has to be in the future"))
    if as_utc(end) <= as_utc(start):
        errors.append(FieldError("end", "end has to be after start"))
    if attendee_limit is None or attendee_limit < 1:
        errors.append(FieldError("attendeeLimit", "attendee limit has to be at least 1"))
    return errors


class SessionLifecycle:
    """
    Create, read, edit, cancel and delete sessions.

    Only the creator may change a session. Cancelled and past sessions
    are frozen; deletion is always open to the creator.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, session_id: int) -> Optional[SessionModel]:
        return self.db.query(SessionModel).filter(SessionModel.id == session_id).first()

    def list_sessions(self, cursor: Optional[str], limit: int) -> Outcome:
        """
        Newest first, keyed on (created_at, id).

        cursor comes from session_cursor() of the last session seen. A bare
        ISO timestamp is also accepted and pages on created_at alone.
        """
        real_limit = max(1, min(settings.sessions_page_max, limit))
        query = self.db.query(SessionModel).order_by(
            SessionModel.created_at.desc(), SessionModel.id.desc()
        )

        if cursor:
            at_part, _, id_part = cursor.partition(CURSOR_SEPARATOR)
            try:
                cursor_at = as_utc(datetime.fromisoformat(at_part))
                cursor_id = int(id_part) if id_part else None
            except ValueError:
                return Outcome.fail("cursor", "invalid cursor")

            if cursor_id is None:
                query = query.filter(SessionModel.created_at < cursor_at)
            else:
                query = query.filter(or_(
                    SessionModel.created_at < cursor_at,
                    and_(SessionModel.created_at == cursor_at, SessionModel.id < cursor_id),
                ))

        sessions = query.limit(real_limit + 1).all()
        return Outcome.success(SessionPage(sessions[:real_limit], len(sessions) > real_limit))

    def create(
        self,
        creator_id: int,
        title: str,
        body: str,
        start: datetime,
        end: datetime,
        attendee_limit: int,
        voice_channel_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Outcome:
        now = as_utc(now) if now else utcnow()
        errors = _validate_fields(title, start, end, attendee_limit, now)
        if errors:
            return Outcome.from_errors(errors)

        session = SessionModel(
            title=title.strip(),
            body=body or "",
            start=as_utc(start),
            end=as_utc(end),
            attendee_limit=attendee_limit,
            creator_id=creator_id,
            voice_channel_url=voice_channel_url,
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        logger.info("Session %s created by actor %s", session.id, creator_id)
        return Outcome.success(session)

    def edit(self, session_id: int, by_actor_id: int, patch: dict, now: Optional[datetime] = None) -> Outcome:
        now = as_utc(now) if now else utcnow()

        # Row lock keeps a concurrent join from slipping under a lowered limit
        session = self.db.query(SessionModel).filter(
            SessionModel.id == session_id
        ).with_for_update().first()

        denial = self._check_mutable(session, by_actor_id, now, "edit")
        if denial is not None:
            self.db.rollback()
            return denial

        # Explicit nulls mean "unchanged", except for clearing the voice channel
        changes = {
            k: v for k, v in patch.items()
            if k in EDITABLE_FIELDS and (v is not None or k == "voice_channel_url")
        }
        merged = {name: changes.get(name, getattr(session, name)) for name in EDITABLE_FIELDS}

        errors = _validate_fields(
            merged["title"], merged["start"], merged["end"], merged["attendee_limit"], now,
            check_start="start" in changes,
        )
        if not errors and "attendee_limit" in changes:
            attendees = self.db.query(func.count(ActorSession.id)).filter(
                ActorSession.session_id == session_id
            ).scalar()
            if merged["attendee_limit"] < attendees:
                errors.append(FieldError(
                    "attendeeLimit", f"attendee limit cannot be lower than the {attendees} current attendees"
                ))
        if errors:
            self.db.rollback()
            return Outcome.from_errors(errors)

        for name, value in changes.items():
            if name in ("start", "end"):
                value = as_utc(value)
            elif name == "title":
                value = value.strip()
            setattr(session, name, value)

        self.db.commit()
        self.db.refresh(session)
        return Outcome.success(session)

    def cancel(self, session_id: int, by_actor_id: int, now: Optional[datetime] = None) -> Outcome:
        now = as_utc(now) if now else utcnow()
        session = self.get(session_id)

        if not session:
            return Outcome.fail("id", "session not found", ErrorCode.NOT_FOUND)
        if session.creator_id != by_actor_id:
            return Outcome.fail("id", "only the creator can cancel a session", ErrorCode.PERMISSION)
        if session_status(session, now) == TimeStatus.PAST:
            return Outcome.fail("id", "session is already over", ErrorCode.PERMISSION)

        if not session.is_cancelled:
            session.is_cancelled = True
            self.db.commit()
            self.db.refresh(session)
            logger.info("Session %s cancelled", session_id)
        return Outcome.success(session)

    def delete(self, session_id: int, by_actor_id: int) -> Outcome:
        session = self.get(session_id)

        if not session:
            return Outcome.fail("id", "session not found", ErrorCode.NOT_FOUND)
        if session.creator_id != by_actor_id:
            return Outcome.fail("id", "only the creator can delete a session", ErrorCode.PERMISSION)

        try:
            delete_sessions_cascade(self.db, [session_id])
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Session %s deleted", session_id)
        return Outcome.success(True)

    def _check_mutable(
        self, session: Optional[SessionModel], by_actor_id: int, now: datetime, action: str
    ) -> Optional[Outcome]:
        if not session:
            return Outcome.fail("id", "session not found", ErrorCode.NOT_FOUND)
        if session.creator_id != by_actor_id:
            return Outcome.fail("id", f"only the creator can {action} a session", ErrorCode.PERMISSION)
        state = lifecycle_state(session, now)
        if state == LifecycleState.PAST:
            return Outcome.fail("id", "session is already over", ErrorCode.PERMISSION)
        if state == LifecycleState.CANCELLED:
            return Outcome.fail("id", "session is cancelled", ErrorCode.PERMISSION)
        return None


def delete_sessions_cascade(db: Session, session_ids: List[int]) -> int:
    """
    Delete sessions with their memberships and comments.

    Does not commit; the caller owns the transaction.
    """
    if not session_ids:
        return 0
    db.query(SessionComment).filter(
        SessionComment.session_id.in_(session_ids)
    ).delete(synchronize_session=False)
    db.query(ActorSession).filter(
        ActorSession.session_id.in_(session_ids)
    ).delete(synchronize_session=False)
    return db.query(SessionModel).filter(
        SessionModel.id.in_(session_ids)
    ).delete(synchronize_session=False)
