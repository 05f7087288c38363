from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional


class CamelModel(BaseModel):
    """
    JSON bodies use camelCase; Python code keeps snake_case attributes.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SignupRequest(CamelModel):
    """
    Signup payload.

    Fields are plain strings on purpose: format and length rules live in
    sessionhub.validation and come back as field errors, not as a 422.
    """
    name: str
    email: str
    password: str


class LoginRequest(CamelModel):
    name_or_email: str
    password: str


class ForgotPasswordRequest(CamelModel):
    email: str


class ChangePasswordRequest(CamelModel):
    token: str
    new_password: str


class ActorResponse(CamelModel):
    """
    Public actor representation.

    email is filled only when the viewer is the actor itself.
    Never include password_hash in any response.
    """
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class SessionCreateRequest(CamelModel):
    title: str
    body: str = ""
    start: datetime
    end: datetime
    attendee_limit: int
    voice_channel_url: Optional[str] = None


class SessionUpdateRequest(CamelModel):
    title: Optional[str] = None
    body: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    attendee_limit: Optional[int] = None
    voice_channel_url: Optional[str] = None


class CapabilitiesResponse(CamelModel):
    can_edit: bool
    can_cancel: bool
    can_delete: bool
    can_join: bool
    can_leave: bool
    can_comment: bool
    can_join_voice: bool


class SessionResponse(CamelModel):
    id: int
    title: str
    body: str
    text_snippet: str
    start: datetime
    end: datetime
    attendee_limit: int
    attendee_count: int
    creator_id: int
    is_cancelled: bool
    time_status: str
    is_creator: bool
    actor_is_part_of_session: bool
    voice_channel_url: Optional[str] = None
    capabilities: CapabilitiesResponse
    created_at: datetime
    updated_at: datetime


class PaginatedSessions(CamelModel):
    sessions: List[SessionResponse]
    has_more: bool
    next_cursor: Optional[str] = None


class CommentCreateRequest(CamelModel):
    text: str


class CommentResponse(CamelModel):
    id: int
    text: str
    session_id: int
    creator_id: int
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    """
    Generic message response for operations without specific return data.
    """
    message: str
