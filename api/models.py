"""
API request and response models for PinSquirrel REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
pins/models.py, which own the internal domain representation. Route handlers
map between the two.

Field rules (lengths, URL scheme, tag names) are enforced by the services so
the CLI importer and the API share one set of rules. The models here only
pin down shape and types.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User
from core.pagination import Pagination
from pins.models import Pin, Tag, TagWithCount

# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str
    password: str = Field(json_schema_extra={"format": "password"})
    email: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str
    password: str = Field(json_schema_extra={"format": "password"})


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UpdateEmailRequest(BaseModel):
    """Request body for PUT /api/v1/auth/email. null or "" removes the email."""

    email: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    new_password: str


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    username: str
    roles: list[str]


class UserResponse(BaseModel):
    """Public view of an account. Never carries password or email hashes."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    roles: list[str]
    has_email: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.id,
            username=user.username,
            roles=sorted(user.roles),
            has_email=user.email_hash is not None,
            created_at=user.created_at,
        )


class TokenValidResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Pins
# ---------------------------------------------------------------------------


class PinCreate(BaseModel):
    """Request body for POST /api/v1/pins."""

    model_config = ConfigDict(str_strip_whitespace=True)

    url: str
    title: str
    description: Optional[str] = None
    read_later: bool = False
    tag_names: list[str] = Field(default_factory=list)


class PinPatch(BaseModel):
    """Request body for PATCH /api/v1/pins/{id}.

    Only fields present in the body are changed. "description": null clears
    the description; omitting it leaves it alone.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    read_later: Optional[bool] = None
    tag_names: Optional[list[str]] = None


class PinResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    title: str
    description: Optional[str] = None
    read_later: bool
    tag_names: list[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_pin(cls, pin: Pin) -> "PinResponse":
        return cls(
            id=pin.id,
            url=pin.url,
            title=pin.title,
            description=pin.description,
            read_later=pin.read_later,
            tag_names=list(pin.tag_names),
            created_at=pin.created_at,
            updated_at=pin.updated_at,
        )


class PaginationMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    page_size: int
    total_pages: int
    total_count: int
    has_next: bool
    has_previous: bool

    @classmethod
    def from_pagination(cls, p: Pagination, total_count: int) -> "PaginationMeta":
        return cls(
            page=p.page,
            page_size=p.page_size,
            total_pages=p.total_pages,
            total_count=total_count,
            has_next=p.has_next,
            has_previous=p.has_previous,
        )


class PinListResponse(BaseModel):
    """Response for GET /api/v1/pins."""

    model_config = ConfigDict(frozen=True)

    items: list[PinResponse]
    pagination: PaginationMeta


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class TagCreate(BaseModel):
    name: str


class TagMergeRequest(BaseModel):
    """Request body for POST /api/v1/tags/merge."""

    source_tag_ids: list[str] = Field(min_length=1, max_length=100)
    target_tag_id: str


class TagResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: str
    pin_count: Optional[int] = None

    @classmethod
    def from_tag(cls, tag: Tag) -> "TagResponse":
        return cls(
            id=tag.id,
            name=tag.name,
            created_at=tag.created_at,
            pin_count=tag.pin_count if isinstance(tag, TagWithCount) else None,
        )


class CountResponse(BaseModel):
    """Number of rows affected by a bulk tag operation."""

    model_config = ConfigDict(frozen=True)

    count: int


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class MetadataResponse(BaseModel):
    """Response for GET /api/v1/metadata."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: Optional[str] = None
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    detail is a string for framework errors and a mapping for domain errors
    that carry structured data (field_errors, existing_pin_id, status).
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
