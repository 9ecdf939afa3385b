"""
API request and response models for QuizMaker REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

JSON field names are camelCase (fullName, sessionId, ...) to match the
browser client; Python attributes stay snake_case via aliases.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
password_hash never appears in any model here.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import SessionView, User


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(_CamelModel):
    """Request body for POST /api/v1/auth/signup.

    Fields default to "" so a missing field reaches AuthService and is
    reported as a 400 validation_error, like an empty one.
    """

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)
    full_name: str = Field(default="", max_length=255)


class LoginRequest(_CamelModel):
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)


class RevokeSessionRequest(_CamelModel):
    session_id: str = Field(default="", max_length=64)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_CamelModel):
    id: str
    email: str
    full_name: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, full_name=user.full_name)


class UserEnvelope(_CamelModel):
    success: bool = True
    user: UserResponse


class SessionResponse(_CamelModel):
    id: str
    is_current: bool
    device: str
    created_at: Optional[str]
    last_active_at: Optional[str]
    expires_at: str
    ip_address: Optional[str]
    user_agent: Optional[str]

    @classmethod
    def from_view(cls, view: SessionView) -> "SessionResponse":
        return cls(
            id=view.id,
            is_current=view.is_current,
            device=view.device,
            created_at=view.created_at,
            last_active_at=view.last_active_at,
            expires_at=view.expires_at,
            ip_address=view.ip_address,
            user_agent=view.user_agent,
        )


class SessionListResponse(_CamelModel):
    success: bool = True
    sessions: list[SessionResponse]


class MessageResponse(_CamelModel):
    success: bool = True
    message: str


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx API response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]
