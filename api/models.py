"""
API request and response models for the blog REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in content/models.py,
which own the internal domain representation. Route handlers map between the
two with model_validate(..., from_attributes=True).

Request models are deliberately loose where the handler must distinguish
"missing" from "invalid" itself (login fields, bulk id lists, travel items):
those checks produce the 400 messages clients rely on.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Every non-2xx JSON response has this shape."""

    error: ErrorDetail


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Body for POST /api/auth/login. Empty fields are rejected by the handler (400)."""

    username: Any = None
    password: Any = None


class LoginResponse(BaseModel):
    ok: bool = True
    user: str


class MeResponse(BaseModel):
    user: str


# ---------------------------------------------------------------------------
# Friend links
# ---------------------------------------------------------------------------


class FriendOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    url: str
    note: str
    sort_order: int
    created_at: str


class FriendCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = ""
    url: str = ""
    note: str = ""


class FriendPatch(BaseModel):
    """Body for PATCH /api/friends/{id}: field edits and/or a one-step move."""

    title: Optional[str] = None
    url: Optional[str] = None
    note: Optional[str] = None
    direction: Optional[Literal["up", "down"]] = None


class FriendReorder(BaseModel):
    """Body for PATCH /api/friends. orderIds is validated by the store."""

    model_config = ConfigDict(populate_by_name=True)

    order_ids: Any = Field(default=None, alias="orderIds")


class FriendList(BaseModel):
    items: list[FriendOut]


class FriendEnvelope(BaseModel):
    friend: FriendOut


# ---------------------------------------------------------------------------
# Travel marks
# ---------------------------------------------------------------------------


class TravelMarkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    adcode: int
    name: str
    sort_order: int
    updated_at: str


class TravelReplace(BaseModel):
    """Body for PATCH /api/travel. items is validated by the store."""

    items: Any = None


class TravelList(BaseModel):
    items: list[TravelMarkOut]


class TravelReplaced(BaseModel):
    ok: bool = True
    items: list[TravelMarkOut]


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


class PostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    title: str
    summary: str
    content: str
    tags: list[str]
    status: str
    visibility: str
    publish_at: Optional[str]
    created_at: str
    updated_at: str


class PostCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, max_length=64)
    slug: Optional[str] = Field(default=None, max_length=255)
    title: str = ""
    summary: str = ""
    content: str = ""
    tags: list[str] = []
    status: Literal["draft", "published"] = "draft"
    visibility: Literal["public", "private"] = "public"
    publish_at: Optional[str] = Field(default=None, alias="publishAt")


class PostPatch(BaseModel):
    """Partial update. Only fields present in the request body are applied."""

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[list[str]] = None
    status: Optional[Literal["draft", "published"]] = None
    visibility: Optional[Literal["public", "private"]] = None
    publish_at: Optional[str] = Field(default=None, alias="publishAt")


class PostList(BaseModel):
    items: list[PostOut]


class PostEnvelope(BaseModel):
    post: PostOut


# ---------------------------------------------------------------------------
# About and admin
# ---------------------------------------------------------------------------


class AboutOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    updated_at: Optional[str] = Field(default=None, serialization_alias="updatedAt")


class AboutUpdate(BaseModel):
    content: str = ""


class CertificateUpload(BaseModel):
    cert: str = ""
    key: str = ""
