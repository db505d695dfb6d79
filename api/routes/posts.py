"""
api/routes/posts.py -- Blog post CRUD.

Routes:
  GET    /api/posts         -- list; ?view=admin shows drafts to the admin, ?q= search, ?limit=
  POST   /api/posts         -- create (admin)
  GET    /api/posts/{id}    -- read; hidden posts are 404 unless the caller is the admin
  PATCH  /api/posts/{id}    -- partial update (admin)
  DELETE /api/posts/{id}    -- delete (admin)

A hidden post answers 404 rather than 401/403 to anonymous callers so the
existence of drafts is not disclosed.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import OkResponse, PostCreate, PostEnvelope, PostList, PostOut, PostPatch
from auth.dependencies import get_current_admin, try_get_current_admin
from content.store import ContentStore, is_publicly_visible, normalize_timestamp
from core.errors import ClientError, NotFoundError

router = APIRouter()


def _post_out(post) -> PostOut:
    return PostOut.model_validate(post, from_attributes=True)


@router.get("/posts", response_model=PostList)
def list_posts(request: Request, view: str = "public", q: str = "", limit: int = 0) -> PostList:
    store: ContentStore = request.app.state.store
    include_hidden = view == "admin" and try_get_current_admin(request) is not None
    posts = store.list_posts(include_hidden=include_hidden, query=q, limit=limit)
    return PostList(items=[_post_out(p) for p in posts])


@router.post("/posts", response_model=PostEnvelope, status_code=201)
def create_post(
    request: Request,
    body: PostCreate,
    admin: str = Depends(get_current_admin),
) -> JSONResponse:
    if not body.title.strip():
        raise ClientError("Missing title")
    store: ContentStore = request.app.state.store
    try:
        post = store.create_post(
            title=body.title,
            post_id=body.id,
            slug=body.slug,
            summary=body.summary,
            content=body.content,
            tags=[str(t) for t in body.tags if t],
            status=body.status,
            visibility=body.visibility,
            publish_at=normalize_timestamp(body.publish_at),
        )
    except IntegrityError as exc:
        raise ClientError("A post with that id already exists.") from exc
    return JSONResponse(status_code=201, content=PostEnvelope(post=_post_out(post)).model_dump())


@router.get("/posts/{post_id}", response_model=PostEnvelope)
def get_post(request: Request, post_id: str) -> PostEnvelope:
    store: ContentStore = request.app.state.store
    post = store.get_post(post_id)
    if post is None:
        raise NotFoundError("Post not found.")
    if not is_publicly_visible(post) and try_get_current_admin(request) is None:
        raise NotFoundError("Post not found.")
    return PostEnvelope(post=_post_out(post))


@router.patch("/posts/{post_id}", response_model=PostEnvelope)
def update_post(
    request: Request,
    post_id: str,
    body: PostPatch,
    admin: str = Depends(get_current_admin),
) -> PostEnvelope:
    """Apply only the fields present in the body; updated_at is always bumped."""
    fields = body.model_dump(exclude_unset=True)
    if "publish_at" in fields:
        fields["publish_at"] = normalize_timestamp(fields["publish_at"])
    if "tags" in fields:
        fields["tags"] = [str(t) for t in fields["tags"] or [] if t]
    for required in ("title", "status", "visibility"):
        if required in fields and fields[required] is None:
            raise ClientError(f"{required} cannot be null")

    store: ContentStore = request.app.state.store
    post = store.update_post(post_id, **fields)
    if post is None:
        raise NotFoundError("Post not found.")
    return PostEnvelope(post=_post_out(post))


@router.delete("/posts/{post_id}", response_model=OkResponse)
def delete_post(
    request: Request,
    post_id: str,
    admin: str = Depends(get_current_admin),
) -> OkResponse:
    store: ContentStore = request.app.state.store
    store.delete_post(post_id)
    return OkResponse()
