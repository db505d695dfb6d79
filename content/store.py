"""
content/store.py -- SQLAlchemy-backed persistence for posts, the about page,
friend links and travel marks, including the ordered-collection mutations.

Uses SQLAlchemy Core (not ORM) so the dataclasses in content/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. ContentStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL.

Ordered collections:
  move_friend()      pairwise adjacent swap. Finds the nearest neighbour with
                     a strictly greater ("up") or strictly lesser ("down")
                     sort key and swaps the two keys. At either extreme it is
                     a silent no-op.
  reorder_friends()  bulk re-rank from a caller-supplied total order. The id
                     list must be non-empty strings, duplicate-free, and
                     equal as a set to the existing ids; then keys n..1 are
                     assigned by position.
  replace_travel()   delete + insert of the whole travel set with keys n..1.

  Each of these runs inside ONE engine.begin() block. A ClientError raised
  during validation rolls back before anything is written, and a storage
  failure part-way through rolls back every row already touched and
  surfaces as TransactionError. Readers never observe a partial reorder.
  The SQLite driver defers BEGIN to the first write, so the validation read
  of reorder_friends() is not under the write lock; the id set is counted
  again after the writes and a mismatch rolls the re-rank back.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from content.models import About, FriendLink, Post, TravelMark
from core.errors import ClientError, NotFoundError, TransactionError

logger = logging.getLogger("copperkoi.content")

DEFAULT_ABOUT = "# About me\n\nIntroduce yourself here. This page can be edited from the studio."

MAX_TRAVEL_ADCODE = 999999
MAX_TRAVEL_NAME = 64
MAX_POST_LIMIT = 50

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_friends = Table(
    "friend_links",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("title", Text, nullable=False),
    Column("url", Text, nullable=False),
    Column("note", Text),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_travel = Table(
    "travel_marks",
    metadata,
    Column("adcode", Integer, primary_key=True, autoincrement=False),
    Column("name", String(MAX_TRAVEL_NAME), nullable=False),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("updated_at", String(32), nullable=False),
)

_posts = Table(
    "posts",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("slug", String(255)),
    Column("title", Text, nullable=False),
    Column("summary", Text),
    Column("content", Text),
    Column("tags", Text, nullable=False, server_default="[]"),  # JSON array serialized as text
    Column("status", String(20), nullable=False, server_default="draft"),
    Column("visibility", String(20), nullable=False, server_default="public"),
    Column("publish_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_about = Table(
    "about",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("content", Text, nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint("id = 1", name="about_single_row"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def normalize_timestamp(value: object) -> Optional[str]:
    """Parse an ISO 8601 timestamp into the stored UTC form.

    Empty values mean "unset" and return None. Naive timestamps are taken as
    UTC. Anything unparseable is a ClientError.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ClientError("Invalid publishAt")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ClientError("Invalid publishAt") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat(timespec="seconds")


def validate_order_ids(order_ids: object, existing_ids: set[str]) -> list[str]:
    """Check a bulk re-rank request against the current id set.

    The submitted list must be a non-empty list of non-empty strings with no
    duplicates whose set equals existing_ids exactly (no missing ids, no
    unknown ids). Returns the list unchanged on success.
    """
    if not isinstance(order_ids, list) or not order_ids:
        raise ClientError("Missing orderIds")
    if any(not isinstance(item, str) or not item for item in order_ids):
        raise ClientError("Invalid orderIds")
    if len(set(order_ids)) != len(order_ids):
        raise ClientError("Duplicate ids")
    if len(order_ids) != len(existing_ids):
        raise ClientError("orderIds count mismatch")
    unknown = [item for item in order_ids if item not in existing_ids]
    if unknown:
        raise ClientError("Unknown id in orderIds", detail=", ".join(unknown))
    return order_ids


def _coerce_adcode(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def normalize_travel_items(raw: object) -> list[TravelMark]:
    """Validate and deduplicate a travel replacement payload.

    Each item needs an integer adcode in 1..999999 and a name of 1-64
    characters after trimming. A repeated adcode keeps its first position
    and takes the last name. Any invalid item rejects the whole payload.
    """
    if not isinstance(raw, list):
        raise ClientError("Invalid items")
    dedup: dict[int, TravelMark] = {}
    for entry in raw:
        if not isinstance(entry, dict):
            raise ClientError("Invalid items")
        adcode = _coerce_adcode(entry.get("adcode"))
        if adcode is None or adcode <= 0 or adcode > MAX_TRAVEL_ADCODE:
            raise ClientError("Invalid items", detail=f"bad adcode: {entry.get('adcode')!r}")
        name = str(entry.get("name") or "").strip()
        if not name or len(name) > MAX_TRAVEL_NAME:
            raise ClientError("Invalid items", detail=f"bad name for adcode {adcode}")
        if adcode in dedup:
            dedup[adcode].name = name
        else:
            dedup[adcode] = TravelMark(adcode=adcode, name=name)
    return list(dedup.values())


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ContentStore:
    """Repository for posts, about, friend links and travel marks.

    Usage:
        store = ContentStore("sqlite:///blog.db")
        friend = store.create_friend("Koi", "https://koi.example")
        store.reorder_friends([friend.id, ...])
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///copperkoi_blog.db") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync route handlers in a thread pool, so the same
            # pooled connection may be used from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self._seed_about()

    def _seed_about(self) -> None:
        with self.engine.begin() as conn:
            exists = conn.execute(select(_about.c.id).where(_about.c.id == 1)).first()
            if exists is None:
                conn.execute(_about.insert().values(id=1, content=DEFAULT_ABOUT, updated_at=_now_iso()))

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Connection]:
        """engine.begin() that reports storage failures as TransactionError.

        Domain errors raised inside the block (ClientError, NotFoundError)
        still roll back and propagate unchanged.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.warning("%s rolled back: %s", operation, exc.__class__.__name__)
            raise TransactionError(f"{operation} failed; no changes were applied.") from exc

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    # ------------------------------------------------------------------
    # Friend links
    # ------------------------------------------------------------------

    def list_friends(self) -> list[FriendLink]:
        """Return all friend links, highest sort_order first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _friends.select().order_by(_friends.c.sort_order.desc(), _friends.c.created_at.desc())
            ).fetchall()
        return [_row_to_friend(r) for r in rows]

    def get_friend(self, friend_id: str) -> Optional[FriendLink]:
        with self.engine.connect() as conn:
            row = conn.execute(_friends.select().where(_friends.c.id == friend_id)).fetchone()
        return _row_to_friend(row) if row is not None else None

    def create_friend(self, title: str, url: str, note: str = "") -> FriendLink:
        """Insert a friend link at the top of the list (max sort_order + 1)."""
        friend_id = f"f_{secrets.token_hex(6)}"
        with self._transaction("create friend") as conn:
            max_order = conn.execute(select(func.coalesce(func.max(_friends.c.sort_order), 0))).scalar()
            conn.execute(
                _friends.insert().values(
                    id=friend_id,
                    title=title,
                    url=url,
                    note=note or "",
                    sort_order=int(max_order or 0) + 1,
                    created_at=_now_iso(),
                )
            )
        return self.get_friend(friend_id)

    def update_friend(self, friend_id: str, direction: Optional[str] = None, **fields) -> bool:
        """Update title/url/note and optionally move one step, atomically.

        The field edit and the move share one transaction, so a failed move
        leaves the edited fields untouched too. Returns False if friend_id
        was not found.
        """
        if direction is not None and direction not in ("up", "down"):
            raise ClientError("Invalid direction")
        if not fields and direction is None:
            return self.get_friend(friend_id) is not None
        with self._transaction("update friend") as conn:
            if fields:
                result = conn.execute(_friends.update().where(_friends.c.id == friend_id).values(**fields))
                if result.rowcount == 0:
                    return False
            if direction is not None:
                self._swap_with_neighbour(conn, friend_id, direction)
        return True

    def delete_friend(self, friend_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_friends.delete().where(_friends.c.id == friend_id))
        return result.rowcount > 0

    def move_friend(self, friend_id: str, direction: str) -> bool:
        """Swap a friend link with its nearest neighbour in the given direction.

        "up" moves towards the top of the listing (next greater sort key),
        "down" towards the bottom (next lesser key). Returns True if a swap
        happened, False at the extreme. Raises NotFoundError for unknown ids.
        """
        if direction not in ("up", "down"):
            raise ClientError("Invalid direction")
        with self._transaction("move friend") as conn:
            return self._swap_with_neighbour(conn, friend_id, direction)

    @staticmethod
    def _swap_with_neighbour(conn: Connection, friend_id: str, direction: str) -> bool:
        current = conn.execute(
            select(_friends.c.id, _friends.c.sort_order).where(_friends.c.id == friend_id)
        ).fetchone()
        if current is None:
            raise NotFoundError("Friend link not found.")

        if direction == "up":
            neighbour_query = (
                select(_friends.c.id, _friends.c.sort_order)
                .where(_friends.c.sort_order > current.sort_order)
                .order_by(_friends.c.sort_order.asc())
            )
        else:
            neighbour_query = (
                select(_friends.c.id, _friends.c.sort_order)
                .where(_friends.c.sort_order < current.sort_order)
                .order_by(_friends.c.sort_order.desc())
            )
        neighbour = conn.execute(neighbour_query.limit(1)).fetchone()
        if neighbour is None:
            return False

        conn.execute(_friends.update().where(_friends.c.id == current.id).values(sort_order=neighbour.sort_order))
        conn.execute(_friends.update().where(_friends.c.id == neighbour.id).values(sort_order=current.sort_order))
        return True

    def reorder_friends(self, order_ids: object) -> list[FriendLink]:
        """Re-rank every friend link from an explicit id order (first = top).

        The id set is re-checked after the writes: the SQLite driver only
        opens the transaction at the first UPDATE, so a link added or deleted
        after validation is caught here and the whole re-rank rolls back.
        """
        with self._transaction("reorder friends") as conn:
            existing = {row.id for row in conn.execute(select(_friends.c.id))}
            ordered = validate_order_ids(order_ids, existing)
            total = len(ordered)
            for index, friend_id in enumerate(ordered):
                result = conn.execute(
                    _friends.update().where(_friends.c.id == friend_id).values(sort_order=total - index)
                )
                if result.rowcount == 0:
                    raise ClientError("Unknown id in orderIds", detail=friend_id)
            current = conn.execute(select(func.count()).select_from(_friends)).scalar()
            if current != total:
                raise ClientError("orderIds count mismatch")
        return self.list_friends()

    # ------------------------------------------------------------------
    # Travel marks
    # ------------------------------------------------------------------

    def list_travel(self) -> list[TravelMark]:
        """Return all travel marks in their saved order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _travel.select().order_by(_travel.c.sort_order.desc(), _travel.c.adcode.asc())
            ).fetchall()
        return [_row_to_travel(r) for r in rows]

    def replace_travel(self, items: object) -> list[TravelMark]:
        """Replace the whole travel set with the submitted items, in order."""
        marks = normalize_travel_items(items)
        stamp = _now_iso()
        total = len(marks)
        with self._transaction("replace travel marks") as conn:
            conn.execute(_travel.delete())
            for index, mark in enumerate(marks):
                mark.sort_order = total - index
                mark.updated_at = stamp
                conn.execute(
                    _travel.insert().values(
                        adcode=mark.adcode,
                        name=mark.name,
                        sort_order=mark.sort_order,
                        updated_at=stamp,
                    )
                )
        return marks

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_post(
        self,
        title: str,
        post_id: Optional[str] = None,
        slug: Optional[str] = None,
        summary: str = "",
        content: str = "",
        tags: Optional[list[str]] = None,
        status: str = "draft",
        visibility: str = "public",
        publish_at: Optional[str] = None,
    ) -> Post:
        """Insert a post. Missing id/slug get random defaults.

        Raises sqlalchemy.exc.IntegrityError if the id already exists.
        """
        post_id = post_id or f"p_{secrets.token_hex(6)}"
        now = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _posts.insert().values(
                    id=post_id,
                    slug=slug or f"post-{secrets.token_hex(5)}",
                    title=title,
                    summary=summary or "",
                    content=content or "",
                    tags=json.dumps(tags or []),
                    status=status,
                    visibility=visibility,
                    publish_at=publish_at,
                    created_at=now,
                    updated_at=now,
                )
            )
        return self.get_post(post_id)

    def get_post(self, post_id: str) -> Optional[Post]:
        with self.engine.connect() as conn:
            row = conn.execute(_posts.select().where(_posts.c.id == post_id)).fetchone()
        return _row_to_post(row) if row is not None else None

    def list_posts(self, include_hidden: bool = False, query: str = "", limit: int = 0) -> list[Post]:
        """Return posts newest first (by publish_at, else created_at).

        include_hidden=False restricts to publicly visible posts. query is a
        case-insensitive substring match over title, summary and content.
        limit is clamped to 1..50; 0 means no limit.
        """
        stmt = _posts.select()
        if not include_hidden:
            stmt = stmt.where(
                _posts.c.status == "published",
                _posts.c.visibility == "public",
                or_(_posts.c.publish_at.is_(None), _posts.c.publish_at <= _now_iso()),
            )
        query = query.strip()
        if query:
            pattern = f"%{_escape_like(query)}%"
            stmt = stmt.where(
                or_(
                    _posts.c.title.ilike(pattern, escape="\\"),
                    _posts.c.summary.ilike(pattern, escape="\\"),
                    _posts.c.content.ilike(pattern, escape="\\"),
                )
            )
        stmt = stmt.order_by(func.coalesce(_posts.c.publish_at, _posts.c.created_at).desc())
        if limit:
            stmt = stmt.limit(min(max(limit, 1), MAX_POST_LIMIT))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_post(r) for r in rows]

    def update_post(self, post_id: str, **fields) -> Optional[Post]:
        """Apply a partial update and bump updated_at. Returns None if not found.

        tags must be passed as list[str]; this method serializes them.
        """
        if "tags" in fields:
            fields["tags"] = json.dumps(fields["tags"] or [])
        fields["updated_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_posts.update().where(_posts.c.id == post_id).values(**fields))
        if result.rowcount == 0:
            return None
        return self.get_post(post_id)

    def delete_post(self, post_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_posts.delete().where(_posts.c.id == post_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # About
    # ------------------------------------------------------------------

    def get_about(self) -> About:
        with self.engine.connect() as conn:
            row = conn.execute(_about.select().where(_about.c.id == 1)).fetchone()
        if row is None:
            return About(content="", updated_at=None)
        return About(content=row.content, updated_at=row.updated_at)

    def set_about(self, content: str) -> About:
        with self.engine.begin() as conn:
            conn.execute(_about.update().where(_about.c.id == 1).values(content=content, updated_at=_now_iso()))
        return self.get_about()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def is_publicly_visible(post: Post, now: Optional[str] = None) -> bool:
    """Mirror of the list_posts() public filter for single-post reads."""
    now = now or _now_iso()
    return (
        post.status == "published"
        and post.visibility == "public"
        and (post.publish_at is None or post.publish_at <= now)
    )


def _row_to_friend(row) -> FriendLink:
    return FriendLink(
        id=row.id,
        title=row.title,
        url=row.url,
        note=row.note or "",
        sort_order=row.sort_order,
        created_at=row.created_at,
    )


def _row_to_travel(row) -> TravelMark:
    return TravelMark(
        adcode=row.adcode,
        name=row.name,
        sort_order=row.sort_order,
        updated_at=row.updated_at,
    )


def _parse_tags(raw: Optional[str]) -> list[str]:
    try:
        value = json.loads(raw or "[]")
    except ValueError:
        return [tag.strip() for tag in (raw or "").split(",") if tag.strip()]
    if not isinstance(value, list):
        return []
    return [str(tag) for tag in value if tag]


def _row_to_post(row) -> Post:
    return Post(
        id=row.id,
        slug=row.slug or "",
        title=row.title,
        summary=row.summary or "",
        content=row.content or "",
        tags=_parse_tags(row.tags),
        status=row.status,
        visibility=row.visibility,
        publish_at=row.publish_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
