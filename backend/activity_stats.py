"""
User activity statistics — what a profile page shows about a member.

Public and private views read the same rows. The private view additionally
carries engagement metrics (response time, weekday/hour heatmap, last active)
and the monthly activity map. A failure in any query fails the whole call.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_merge import EPOCH, as_utc, combine_dated, latest_combined, monthly_combined
from errors import StoreError
from models import Reply, Thread

logger = logging.getLogger("forum.stats")

TOP_SECTIONS_LIMIT = 5
RECENT_LIMIT = 5
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


# ── Schemas ──────────────────────────────────────────────────

class SectionCount(BaseModel):
    section: str
    count: int


class ThreadInfo(BaseModel):
    id: str
    title: str
    section: str
    created_at: datetime


class ReplyInfo(BaseModel):
    id: str
    content: str
    thread_id: str
    thread_title: Optional[str] = None
    created_at: datetime


class UserRecentActivity(BaseModel):
    threads: List[ThreadInfo] = []
    replies: List[ReplyInfo] = []


class UserEngagementMetrics(BaseModel):
    avg_response_time: float = 0.0  # hours
    activity_heatmap: Dict[str, int] = {}
    last_active: datetime = EPOCH


class UserActivityStats(BaseModel):
    total_threads: int = 0
    total_replies: int = 0
    top_sections: List[SectionCount] = []
    recent_activity: UserRecentActivity = UserRecentActivity()
    activity_map: Optional[Dict[str, int]] = None
    metrics: Optional[UserEngagementMetrics] = None


# ── Helpers ──────────────────────────────────────────────────

def _live_threads(user_id: str):
    return and_(Thread.user_id == user_id, Thread.deleted_at.is_(None))


def _live_replies(user_id: str):
    return and_(Reply.user_id == user_id, Reply.deleted_at.is_(None))


def heatmap_key(ts: datetime) -> str:
    ts = as_utc(ts)
    return f"{WEEKDAYS[ts.weekday()]}-{ts.hour:02d}"


def dated_activity(user_id: str):
    """The user's thread and reply timestamps as one relation"""
    return combine_dated(
        select(Thread.created_at.label("created_at")).where(_live_threads(user_id)),
        select(Reply.created_at.label("created_at")).where(_live_replies(user_id)),
    )


# ── Queries ──────────────────────────────────────────────────

async def count_threads(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(select(func.count(Thread.id)).where(_live_threads(user_id)))
    return result.scalar() or 0


async def count_replies(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(select(func.count(Reply.id)).where(_live_replies(user_id)))
    return result.scalar() or 0


async def top_sections(db: AsyncSession, user_id: str, limit: int = TOP_SECTIONS_LIMIT) -> List[SectionCount]:
    count_col = func.count(Thread.id).label("count")
    stmt = (
        select(Thread.section, count_col)
        .where(_live_threads(user_id))
        .group_by(Thread.section)
        .order_by(count_col.desc(), Thread.section)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return [SectionCount(section=section, count=count) for section, count in result.all()]


async def recent_activity(db: AsyncSession, user_id: str, limit: int = RECENT_LIMIT) -> UserRecentActivity:
    threads_q = await db.execute(
        select(Thread.id, Thread.title, Thread.section, Thread.created_at)
        .where(_live_threads(user_id))
        .order_by(Thread.created_at.desc(), Thread.id.desc())
        .limit(limit)
    )
    threads = [
        ThreadInfo(id=t.id, title=t.title, section=t.section, created_at=as_utc(t.created_at))
        for t in threads_q.all()
    ]

    # Parent title is null once the parent thread is deleted
    replies_q = await db.execute(
        select(Reply.id, Reply.content, Reply.thread_id, Reply.created_at, Thread.title.label("thread_title"))
        .outerjoin(Thread, and_(Thread.id == Reply.thread_id, Thread.deleted_at.is_(None)))
        .where(_live_replies(user_id))
        .order_by(Reply.created_at.desc(), Reply.id.desc())
        .limit(limit)
    )
    replies = [
        ReplyInfo(
            id=r.id, content=r.content, thread_id=r.thread_id,
            thread_title=r.thread_title, created_at=as_utc(r.created_at),
        )
        for r in replies_q.all()
    ]
    return UserRecentActivity(threads=threads, replies=replies)


async def engagement_metrics(db: AsyncSession, user_id: str) -> UserEngagementMetrics:
    result = await db.execute(
        select(Reply.created_at, Thread.created_at.label("thread_created_at"))
        .join(Thread, and_(Thread.id == Reply.thread_id, Thread.deleted_at.is_(None)))
        .where(_live_replies(user_id))
    )

    total_hours = 0.0
    responses = 0
    heatmap: Dict[str, int] = {}
    for reply_at, thread_at in result.all():
        total_hours += (as_utc(reply_at) - as_utc(thread_at)).total_seconds() / 3600
        responses += 1
        key = heatmap_key(reply_at)
        heatmap[key] = heatmap.get(key, 0) + 1

    return UserEngagementMetrics(
        avg_response_time=total_hours / responses if responses else 0.0,
        activity_heatmap=heatmap,
        last_active=await last_active(db, user_id),
    )


async def last_active(db: AsyncSession, user_id: str) -> datetime:
    return await latest_combined(db, dated_activity(user_id), default=EPOCH)


async def activity_map(db: AsyncSession, user_id: str) -> Dict[str, int]:
    return await monthly_combined(db, dated_activity(user_id))


# ── Entry point ──────────────────────────────────────────────

async def get_user_stats(db: AsyncSession, user_id: str, include_private: bool) -> UserActivityStats:
    """Profile statistics for one user. An unknown user yields zero-valued stats."""
    try:
        stats = UserActivityStats(
            total_threads=await count_threads(db, user_id),
            total_replies=await count_replies(db, user_id),
            top_sections=await top_sections(db, user_id),
            recent_activity=await recent_activity(db, user_id),
        )
        if include_private:
            stats.metrics = await engagement_metrics(db, user_id)
            stats.activity_map = await activity_map(db, user_id)
    except SQLAlchemyError as exc:
        logger.error(f"Stats aggregation failed for user {user_id}: {exc}")
        raise StoreError("Failed to fetch user stats") from exc

    return stats
