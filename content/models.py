"""
content/models.py -- Domain dataclasses for blog content.

These are pure data containers with zero logic. Ordering, validation and
visibility rules live in content/store.py.

sort_order semantics (friend links and travel marks): higher sorts first.
Listings use ORDER BY sort_order DESC, so a bulk re-rank gives the first id
in the submitted list the highest key.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FriendLink:
    """An entry on the friends page. id is "f_" + 12 hex chars."""

    id: str
    title: str
    url: str
    note: str = ""
    sort_order: int = 0
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class TravelMark:
    """A visited region on the travel map, keyed by its administrative code."""

    adcode: int
    name: str
    sort_order: int = 0
    updated_at: str = ""


@dataclass
class Post:
    """A blog post.

    Public visibility requires status == "published", visibility == "public"
    and publish_at unset or in the past. Everything else is admin-only.
    """

    id: str
    slug: str
    title: str
    summary: str = ""
    content: str = ""
    tags: list[str] = field(default_factory=list)
    status: str = "draft"  # "draft" | "published"
    visibility: str = "public"  # "public" | "private"
    publish_at: Optional[str] = None  # ISO 8601 UTC
    created_at: str = ""
    updated_at: str = ""


@dataclass
class About:
    content: str
    updated_at: Optional[str] = None
