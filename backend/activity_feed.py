"""
Activity feed — a user's threads and replies as one chronological sequence.

Both kinds are stacked with UNION ALL and paged as a single list ordered by
(created_at desc, id desc), so page N is the same slice whether the user
posted threads, replies or a mix.
"""

import logging
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field
from sqlalchemy import String, and_, cast, literal, null, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_merge import as_utc, combine_dated, count_combined
from errors import StoreError
from models import ActivityKind, Reply, Thread

logger = logging.getLogger("forum.feed")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


def clamp_pagination(page: int, page_size: int) -> Tuple[int, int]:
    """page < 1 becomes 1; a page_size outside [1, MAX_PAGE_SIZE] falls back to the default"""
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


# ── Schemas ──────────────────────────────────────────────────

class ThreadActivity(BaseModel):
    type: Literal["thread"] = "thread"
    id: str
    content: str  # the thread title
    thread_id: str
    title: str
    created_at: datetime
    section: str


class ReplyActivity(BaseModel):
    type: Literal["reply"] = "reply"
    id: str
    content: str
    thread_id: str
    title: Optional[str] = None  # parent title, null if the parent was deleted
    created_at: datetime


ActivityEvent = Annotated[Union[ThreadActivity, ReplyActivity], Field(discriminator="type")]


class PaginatedActivity(BaseModel):
    activities: List[ActivityEvent] = []
    total: int = 0
    page: int
    page_size: int


# ── Query ────────────────────────────────────────────────────

def merged_activity(user_id: str):
    """Threads and replies of one user, tagged with their kind"""
    threads = select(
        literal(ActivityKind.THREAD.value).label("type"),
        Thread.id.label("id"),
        Thread.title.label("content"),
        Thread.id.label("thread_id"),
        Thread.title.label("title"),
        Thread.created_at.label("created_at"),
        Thread.section.label("section"),
    ).where(Thread.user_id == user_id, Thread.deleted_at.is_(None))

    replies = (
        select(
            literal(ActivityKind.REPLY.value).label("type"),
            Reply.id.label("id"),
            Reply.content.label("content"),
            Reply.thread_id.label("thread_id"),
            Thread.title.label("title"),
            Reply.created_at.label("created_at"),
            cast(null(), String).label("section"),
        )
        .outerjoin(Thread, and_(Thread.id == Reply.thread_id, Thread.deleted_at.is_(None)))
        .where(Reply.user_id == user_id, Reply.deleted_at.is_(None))
    )

    return combine_dated(threads, replies)


def to_event(row) -> Union[ThreadActivity, ReplyActivity]:
    kind = ActivityKind(row.type)
    if kind is ActivityKind.THREAD:
        return ThreadActivity(
            id=row.id, content=row.content, thread_id=row.thread_id,
            title=row.title, created_at=as_utc(row.created_at), section=row.section,
        )
    if kind is ActivityKind.REPLY:
        return ReplyActivity(
            id=row.id, content=row.content, thread_id=row.thread_id,
            title=row.title, created_at=as_utc(row.created_at),
        )
    raise ValueError(f"Unhandled activity kind: {kind}")


async def get_user_activity(db: AsyncSession, user_id: str, page: int, page_size: int) -> PaginatedActivity:
    """One page of the merged feed. page is 1-based; both values arrive pre-clamped."""
    combined = merged_activity(user_id)
    offset = (page - 1) * page_size

    stmt = (
        select(combined)
        .order_by(combined.c.created_at.desc(), combined.c.id.desc())
        .limit(page_size)
        .offset(offset)
    )

    try:
        total = await count_combined(db, combined)
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as exc:
        logger.error(f"Activity feed failed for user {user_id}: {exc}")
        raise StoreError("Failed to fetch user activity") from exc

    return PaginatedActivity(
        activities=[to_event(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )
