import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response
from sessionhub.auth import RequestContext
from sessionhub.config import get_settings
from sessionhub.dependencies import (
    get_current_actor_id, get_directory, get_erasure_coordinator, get_request_context,
)
from sessionhub.directory import ActorDirectory
from sessionhub.erasure import AccountErasureCoordinator
from sessionhub.errors import FatalStoreError
from sessionhub.routers.common import actor_view, raise_for_errors
from sessionhub.schemas import (
    ActorResponse, ChangePasswordRequest, ForgotPasswordRequest, LoginRequest,
    MessageResponse, SignupRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


@router.post("/signup", response_model=ActorResponse, status_code=status.HTTP_201_CREATED)
def signup(
    request: SignupRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    directory: ActorDirectory = Depends(get_directory)
):
    """
    Create new account and log it in.

    Error cases:
    - 400: name, email or password rejected by validation
    - 409: name or email already taken (name reported first)
    """
    outcome = directory.signup(ctx, request.name, request.email, request.password)
    if not outcome:
        raise_for_errors(outcome)

    _set_session_cookie(response, ctx.session_id)
    return actor_view(outcome.value, viewer_id=outcome.value.id)


@router.post("/login", response_model=ActorResponse)
def login(
    request: LoginRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    directory: ActorDirectory = Depends(get_directory)
):
    """
    Authenticate by name or email.

    Input containing "@" is looked up as an email, anything else as a
    case-insensitive name.
    """
    outcome = directory.login(ctx, request.name_or_email, request.password)
    if not outcome:
        # Unknown account and wrong password both answer 401
        raise_for_errors(outcome, status_code=status.HTTP_401_UNAUTHORIZED)

    _set_session_cookie(response, ctx.session_id)
    return actor_view(outcome.value, viewer_id=outcome.value.id)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    directory: ActorDirectory = Depends(get_directory)
):
    """
    Invalidate session and clear cookie.

    Returns success even if session doesn't exist (idempotent).
    The cookie is cleared even when the server-side delete fails.
    """
    destroyed = directory.logout(ctx)
    _clear_session_cookie(response)

    if not destroyed:
        return MessageResponse(message="Logged out; server-side session could not be removed")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=ActorResponse)
def me(
    actor_id: int = Depends(get_current_actor_id),
    directory: ActorDirectory = Depends(get_directory)
):
    actor = directory.get(actor_id)
    if not actor:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return actor_view(actor, viewer_id=actor_id)


@router.delete("/me", response_model=MessageResponse)
def forget_me(
    response: Response,
    actor_id: int = Depends(get_current_actor_id),
    ctx: RequestContext = Depends(get_request_context),
    eraser: AccountErasureCoordinator = Depends(get_erasure_coordinator)
):
    """
    Erase the caller's account with its sessions, memberships and comments.
    """
    try:
        outcome = eraser.erase_account(actor_id, ctx)
    except FatalStoreError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account could not be erased, nothing was removed"
        )
    if not outcome:
        raise_for_errors(outcome)

    _clear_session_cookie(response)
    return MessageResponse(message="Account erased")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    request: ForgotPasswordRequest,
    directory: ActorDirectory = Depends(get_directory)
):
    """
    Same answer whether or not the email belongs to an account.
    """
    directory.request_password_recovery(request.email)
    return MessageResponse(message="If the email exists, a recovery link was sent")


@router.post("/change-password", response_model=ActorResponse)
def change_password(
    request: ChangePasswordRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    directory: ActorDirectory = Depends(get_directory)
):
    outcome = directory.complete_password_recovery(ctx, request.token, request.new_password)
    if not outcome:
        raise_for_errors(outcome)

    _set_session_cookie(response, ctx.session_id)
    return actor_view(outcome.value, viewer_id=outcome.value.id)


@router.get("/actors/{actor_id}", response_model=ActorResponse)
def get_actor(
    actor_id: int,
    ctx: RequestContext = Depends(get_request_context),
    directory: ActorDirectory = Depends(get_directory)
):
    actor = directory.get(actor_id)
    if not actor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Actor not found")
    return actor_view(actor, viewer_id=ctx.current_actor_id())


def _cookie_domain():
    return settings.cookie_domain if settings.cookie_domain != "localhost" else None


def _set_session_cookie(response: Response, session_id: str):
    """
    Set session cookie with security flags.

    The cookie only contains the session ID (opaque token).
    All actor data stays server-side.
    """
    response.set_cookie(
        key=settings.cookie_name,
        value=session_id,
        httponly=settings.cookie_httponly,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.session_expire_hours * 3600,
        path="/",
        domain=_cookie_domain()
    )


def _clear_session_cookie(response: Response):
    """
    Clear session cookie by setting it with max_age=0.
    """
    response.set_cookie(
        key=settings.cookie_name,
        value="",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=0,
        path="/",
        domain=_cookie_domain()
    )
