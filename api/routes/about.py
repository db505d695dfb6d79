"""
api/routes/about.py -- The single about page.

Routes:
  GET /api/about  -- {"content", "updatedAt"} (public)
  PUT /api/about  -- replace the content (admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AboutOut, AboutUpdate, OkResponse
from auth.dependencies import get_current_admin
from content.store import ContentStore

router = APIRouter()


@router.get("/about", response_model=AboutOut)
async def get_about(request: Request) -> AboutOut:
    store: ContentStore = request.app.state.store
    about = store.get_about()
    return AboutOut(content=about.content, updated_at=about.updated_at)


@router.put("/about", response_model=OkResponse)
def update_about(
    request: Request,
    body: AboutUpdate,
    admin: str = Depends(get_current_admin),
) -> OkResponse:
    store: ContentStore = request.app.state.store
    store.set_about(body.content)
    return OkResponse()
