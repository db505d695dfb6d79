"""
api/routes/travel.py -- Travel map marks.

Routes:
  GET   /api/travel  -- list marks in saved order (public)
  PATCH /api/travel  -- replace the whole set from {"items": [{adcode, name}, ...]} (admin)

The replacement is all-or-nothing: validation failures are 400 before any
write, and a storage failure rolls the delete/insert cycle back (500).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import TravelList, TravelMarkOut, TravelReplace, TravelReplaced
from auth.dependencies import get_current_admin
from content.store import ContentStore

router = APIRouter()


@router.get("/travel", response_model=TravelList)
async def list_travel(request: Request) -> TravelList:
    store: ContentStore = request.app.state.store
    return TravelList(items=[TravelMarkOut.model_validate(m, from_attributes=True) for m in store.list_travel()])


@router.patch("/travel", response_model=TravelReplaced)
def replace_travel(
    request: Request,
    body: TravelReplace,
    admin: str = Depends(get_current_admin),
) -> TravelReplaced:
    store: ContentStore = request.app.state.store
    marks = store.replace_travel(body.items)
    return TravelReplaced(items=[TravelMarkOut.model_validate(m, from_attributes=True) for m in marks])
