from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sessionhub.auth import RequestContext
from sessionhub.comments import CommentBoard
from sessionhub.dependencies import (
    get_comment_board, get_current_actor_id, get_ledger, get_lifecycle, get_request_context,
)
from sessionhub.ledger import MembershipLedger
from sessionhub.lifecycle import SessionLifecycle, session_cursor
from sessionhub.routers.common import comment_view, raise_for_errors, session_view
from sessionhub.schemas import (
    CommentCreateRequest, CommentResponse, MessageResponse, PaginatedSessions,
    SessionCreateRequest, SessionResponse, SessionUpdateRequest,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=PaginatedSessions)
def list_sessions(
    limit: int = Query(10, ge=1),
    cursor: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    """
    Newest sessions first. Pass nextCursor back as cursor for the next page.
    """
    outcome = lifecycle.list_sessions(cursor, limit)
    if not outcome:
        raise_for_errors(outcome)

    page = outcome.value
    viewer_id = ctx.current_actor_id()
    next_cursor = None
    if page.has_more and page.sessions:
        next_cursor = session_cursor(page.sessions[-1])

    return PaginatedSessions(
        sessions=[session_view(s, ledger, viewer_id) for s in page.sessions],
        has_more=page.has_more,
        next_cursor=next_cursor,
    )


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: int,
    ctx: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    session = lifecycle.get(session_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session_view(session, ledger, ctx.current_actor_id())


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    request: SessionCreateRequest,
    actor_id: int = Depends(get_current_actor_id),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    """
    The creator is always the authenticated caller.
    """
    outcome = lifecycle.create(
        creator_id=actor_id,
        title=request.title,
        body=request.body,
        start=request.start,
        end=request.end,
        attendee_limit=request.attendee_limit,
        voice_channel_url=request.voice_channel_url,
    )
    if not outcome:
        raise_for_errors(outcome)
    return session_view(outcome.value, ledger, actor_id)


@router.patch("/{session_id}", response_model=SessionResponse)
def edit_session(
    session_id: int,
    request: SessionUpdateRequest,
    actor_id: int = Depends(get_current_actor_id),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    outcome = lifecycle.edit(session_id, actor_id, request.model_dump(exclude_unset=True))
    if not outcome:
        raise_for_errors(outcome)
    return session_view(outcome.value, ledger, actor_id)


@router.post("/{session_id}/cancel", response_model=SessionResponse)
def cancel_session(
    session_id: int,
    actor_id: int = Depends(get_current_actor_id),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    outcome = lifecycle.cancel(session_id, actor_id)
    if not outcome:
        raise_for_errors(outcome)
    return session_view(outcome.value, ledger, actor_id)


@router.delete("/{session_id}", response_model=MessageResponse)
def delete_session(
    session_id: int,
    actor_id: int = Depends(get_current_actor_id),
    lifecycle: SessionLifecycle = Depends(get_lifecycle)
):
    outcome = lifecycle.delete(session_id, actor_id)
    if not outcome:
        raise_for_errors(outcome)
    return MessageResponse(message="Session deleted")


@router.post("/{session_id}/join", response_model=SessionResponse)
def join_session(
    session_id: int,
    actor_id: int = Depends(get_current_actor_id),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    outcome = ledger.join(session_id, actor_id)
    if not outcome:
        raise_for_errors(outcome)
    return session_view(lifecycle.get(session_id), ledger, actor_id)


@router.post("/{session_id}/leave", response_model=SessionResponse)
def leave_session(
    session_id: int,
    actor_id: int = Depends(get_current_actor_id),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
    ledger: MembershipLedger = Depends(get_ledger)
):
    outcome = ledger.leave(session_id, actor_id)
    if not outcome:
        raise_for_errors(outcome)
    session = lifecycle.get(session_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session_view(session, ledger, actor_id)


@router.get("/{session_id}/comments", response_model=List[CommentResponse])
def list_comments(
    session_id: int,
    board: CommentBoard = Depends(get_comment_board)
):
    return [comment_view(c) for c in board.list_for_session(session_id)]


@router.post("/{session_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    session_id: int,
    request: CommentCreateRequest,
    actor_id: int = Depends(get_current_actor_id),
    board: CommentBoard = Depends(get_comment_board)
):
    outcome = board.add(session_id, actor_id, request.text)
    if not outcome:
        raise_for_errors(outcome)
    return comment_view(outcome.value)


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
def delete_comment(
    comment_id: int,
    actor_id: int = Depends(get_current_actor_id),
    board: CommentBoard = Depends(get_comment_board)
):
    outcome = board.delete(comment_id, actor_id)
    if not outcome:
        raise_for_errors(outcome)
    return MessageResponse(message="Comment deleted")
