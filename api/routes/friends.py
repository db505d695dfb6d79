"""
api/routes/friends.py -- Friend link CRUD and ordering.

Routes:
  GET    /api/friends        -- list, highest sort_order first (public)
  POST   /api/friends        -- create at the top of the list (admin)
  PATCH  /api/friends        -- bulk re-rank from {"orderIds": [...]} (admin)
  PATCH  /api/friends/{id}   -- edit title/url/note and/or move one step (admin)
  DELETE /api/friends/{id}   -- delete (admin)

Ordering semantics live in ContentStore.move_friend / reorder_friends.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import FriendCreate, FriendEnvelope, FriendList, FriendOut, FriendPatch, FriendReorder, OkResponse
from auth.dependencies import get_current_admin
from content.store import ContentStore
from core.errors import ClientError, NotFoundError
from core.security import normalize_safe_http_url

# Auth policy:
# - GET  /api/friends:        public
# - all mutating routes:      require admin (get_current_admin)
router = APIRouter()


@router.get("/friends", response_model=FriendList)
async def list_friends(request: Request) -> FriendList:
    store: ContentStore = request.app.state.store
    return FriendList(items=[FriendOut.model_validate(f, from_attributes=True) for f in store.list_friends()])


@router.post("/friends", response_model=FriendEnvelope, status_code=201)
def create_friend(
    request: Request,
    body: FriendCreate,
    admin: str = Depends(get_current_admin),
) -> JSONResponse:
    if not body.title or not body.url:
        raise ClientError("Missing title or url")
    safe_url = normalize_safe_http_url(body.url)
    if not safe_url:
        raise ClientError("Invalid url")
    store: ContentStore = request.app.state.store
    friend = store.create_friend(body.title, safe_url, body.note)
    return JSONResponse(
        status_code=201,
        content=FriendEnvelope(friend=FriendOut.model_validate(friend, from_attributes=True)).model_dump(),
    )


@router.patch("/friends", response_model=OkResponse)
def reorder_friends(
    request: Request,
    body: FriendReorder,
    admin: str = Depends(get_current_admin),
) -> OkResponse:
    """Replace the whole friend ordering. The first id becomes the top entry.

    The id list must match the existing set exactly; anything else is a 400
    and nothing is written.
    """
    store: ContentStore = request.app.state.store
    store.reorder_friends(body.order_ids)
    return OkResponse()


@router.patch("/friends/{friend_id}", response_model=FriendEnvelope)
def update_friend(
    request: Request,
    friend_id: str,
    body: FriendPatch,
    admin: str = Depends(get_current_admin),
) -> FriendEnvelope:
    """Edit fields and/or move the link one step up or down.

    Both happen in one transaction. A move at the top or bottom of the
    list is a no-op, not an error.
    """
    store: ContentStore = request.app.state.store
    if store.get_friend(friend_id) is None:
        raise NotFoundError("Friend link not found.")

    updates: dict = {}
    if body.title is not None:
        updates["title"] = body.title
    if body.url is not None:
        safe_url = normalize_safe_http_url(body.url)
        if not safe_url:
            raise ClientError("Invalid url")
        updates["url"] = safe_url
    if body.note is not None:
        updates["note"] = body.note
    if not store.update_friend(friend_id, direction=body.direction, **updates):
        raise NotFoundError("Friend link not found.")

    friend = store.get_friend(friend_id)
    if friend is None:
        raise NotFoundError("Friend link not found.")
    return FriendEnvelope(friend=FriendOut.model_validate(friend, from_attributes=True))


@router.delete("/friends/{friend_id}", response_model=OkResponse)
def delete_friend(
    request: Request,
    friend_id: str,
    admin: str = Depends(get_current_admin),
) -> OkResponse:
    store: ContentStore = request.app.state.store
    store.delete_friend(friend_id)
    return OkResponse()
