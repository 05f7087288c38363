from dataclasses import asdict
from typing import NoReturn
from fastapi import HTTPException, status
from sessionhub.clock import as_utc
from sessionhub.directory import visible_email
from sessionhub.errors import ErrorCode, Outcome
from sessionhub.ledger import MembershipLedger
from sessionhub.lifecycle import capabilities_for, session_status, text_snippet
from sessionhub.models import Actor, Session as SessionModel, SessionComment
from sessionhub.schemas import (
    ActorResponse, CapabilitiesResponse, CommentResponse, SessionResponse,
)

STATUS_BY_CODE = {
    ErrorCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PERMISSION: status.HTTP_403_FORBIDDEN,
    ErrorCode.CAPACITY: status.HTTP_409_CONFLICT,
    ErrorCode.EXPIRED_TOKEN: status.HTTP_400_BAD_REQUEST,
}


def raise_for_errors(outcome: Outcome, status_code: int = None) -> NoReturn:
    """
    Turn a failed Outcome into an HTTP error carrying {field, message} pairs.
    """
    raise HTTPException(
        status_code=status_code or STATUS_BY_CODE[outcome.error.code],
        detail={"errors": [e.to_dict() for e in outcome.errors]}
    )


def actor_view(actor: Actor, viewer_id: int = None) -> ActorResponse:
    return ActorResponse(
        id=actor.id,
        name=actor.name,
        email=visible_email(actor, viewer_id),
        created_at=as_utc(actor.created_at),
        updated_at=as_utc(actor.updated_at),
    )


def session_view(session: SessionModel, ledger: MembershipLedger, viewer_id: int = None) -> SessionResponse:
    """
    Read model of a session for one viewer, with derived status and count.
    """
    attendee_count = ledger.count(session.id)
    is_member = ledger.is_member(session.id, viewer_id)
    capabilities = capabilities_for(viewer_id, session, is_member, attendee_count)
    is_creator = viewer_id is not None and session.creator_id == viewer_id

    return SessionResponse(
        id=session.id,
        title=session.title,
        body=session.body,
        text_snippet=text_snippet(session.body),
        start=as_utc(session.start),
        end=as_utc(session.end),
        attendee_limit=session.attendee_limit,
        attendee_count=attendee_count,
        creator_id=session.creator_id,
        is_cancelled=session.is_cancelled,
        time_status=session_status(session).value,
        is_creator=is_creator,
        actor_is_part_of_session=is_member,
        voice_channel_url=session.voice_channel_url if capabilities.can_join_voice else None,
        capabilities=CapabilitiesResponse(**asdict(capabilities)),
        created_at=as_utc(session.created_at),
        updated_at=as_utc(session.updated_at),
    )


def comment_view(comment: SessionComment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        text=comment.text,
        session_id=comment.session_id,
        creator_id=comment.creator_id,
        created_at=as_utc(comment.created_at),
        updated_at=as_utc(comment.updated_at),
    )
