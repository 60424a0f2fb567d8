"""
Forum Search Engine — composes one parameterised query per search request.

A search picks exactly one base predicate (title / content / user / tags) and
ANDs every optional filter onto it. Reply counts and last-reply times are
aggregated over a LEFT OUTER JOIN of live replies grouped by thread, so
``hasReplies`` is a HAVING clause and ``sortBy=replies`` orders by the
aggregate. Matching is case-insensitive substring only; ``relevant`` merely
puts title matches ahead of everything else.
"""

import calendar
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy import Select, and_, case, distinct, exists, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from activity_merge import as_utc
from errors import SearchValidationError, StoreError
from models import DateRange, Reply, SearchType, SortMode, Thread, User

logger = logging.getLogger("forum.search")

# 0 disables the ceiling
SEARCH_MAX_RESULTS = int(os.getenv("SEARCH_MAX_RESULTS", "500"))
SNIPPET_CONTEXT = 100


# ── Schemas ──────────────────────────────────────────────────

class SearchQuery(BaseModel):
    type: SearchType
    query: str = Field(..., min_length=1)
    section: Optional[str] = None
    date_range: Optional[str] = None
    has_replies: Optional[bool] = None
    tags: List[str] = []
    sort_by: Optional[str] = None
    team_filter: Optional[str] = None

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be blank")
        return v

    @classmethod
    def from_params(cls, **params) -> "SearchQuery":
        """Build from raw request parameters, mapping any failure to SearchValidationError"""
        try:
            return cls(**params)
        except ValidationError as exc:
            logger.info(f"Rejected search parameters: {exc.error_count()} error(s)")
            raise SearchValidationError() from exc


class AuthorOut(BaseModel):
    id: str
    display_name: str
    avatar_url: Optional[str] = None


class ReplyOut(BaseModel):
    id: str
    content: str
    thread_id: str
    user_id: str
    created_at: datetime
    author: Optional[AuthorOut] = None


class SearchResult(BaseModel):
    id: str
    title: str
    content: str
    section: str
    tags: str
    views: int
    user_id: str
    created_at: datetime
    author: Optional[AuthorOut] = None
    replies: List[ReplyOut] = []
    reply_count: int = 0
    last_reply_at: Optional[datetime] = None
    matches: List[str] = []


class SearchResultSet(BaseModel):
    results: List[SearchResult]
    total: int
    truncated: bool = False


# ── Filters ──────────────────────────────────────────────────

def months_ago(now: datetime, months: int) -> datetime:
    """Step back whole calendar months, clamping the day to the target month"""
    month_index = now.month - 1 - months
    year = now.year + month_index // 12
    month = month_index % 12 + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def date_lower_bound(date_range: Optional[str], now: datetime) -> Optional[datetime]:
    """Earliest creation time admitted by a date-range bucket; None means unbounded"""
    try:
        bucket = DateRange(date_range) if date_range else DateRange.ALL
    except ValueError:
        return None

    if bucket is DateRange.TODAY:
        return now - timedelta(days=1)
    if bucket is DateRange.WEEK:
        return now - timedelta(days=7)
    if bucket is DateRange.MONTH:
        return months_ago(now, 1)
    if bucket is DateRange.SEMESTER:
        return months_ago(now, 4)
    return None


def sort_mode(sort_by: Optional[str]) -> SortMode:
    try:
        return SortMode(sort_by) if sort_by else SortMode.RECENT
    except ValueError:
        return SortMode.RECENT


def _is_filter_value(value: Optional[str]) -> bool:
    return bool(value) and value != "all"


def base_predicate(search_type: SearchType, text: str):
    if search_type is SearchType.TITLE:
        return Thread.title.icontains(text, autoescape=True)
    if search_type is SearchType.CONTENT:
        # aliased so it does not correlate with the outer replies join
        matching = aliased(Reply)
        reply_match = exists().where(
            matching.thread_id == Thread.id,
            matching.deleted_at.is_(None),
            matching.content.icontains(text, autoescape=True),
        )
        return or_(Thread.content.icontains(text, autoescape=True), reply_match)
    if search_type is SearchType.USER:
        authors = select(User.id).where(
            or_(
                User.display_name.icontains(text, autoescape=True),
                User.email.icontains(text, autoescape=True),
            )
        )
        return Thread.user_id.in_(authors)
    if search_type is SearchType.TAGS:
        return Thread.tags.icontains(text, autoescape=True)
    raise SearchValidationError(f"Unsupported search type: {search_type}")


reply_count_col = func.count(distinct(Reply.id)).label("reply_count")
last_reply_at_col = func.max(Reply.created_at).label("last_reply_at")


def build_search_statement(query: SearchQuery, now: Optional[datetime] = None) -> Select:
    """Filtered, grouped statement without ordering, limits or loader options"""
    now = now or datetime.now(timezone.utc)

    stmt = (
        select(Thread, reply_count_col, last_reply_at_col)
        .outerjoin(Reply, and_(Reply.thread_id == Thread.id, Reply.deleted_at.is_(None)))
        .where(Thread.deleted_at.is_(None))
        .where(base_predicate(query.type, query.query))
    )

    if _is_filter_value(query.section):
        stmt = stmt.where(Thread.section == query.section)

    since = date_lower_bound(query.date_range, now)
    if since is not None:
        stmt = stmt.where(Thread.created_at > since)

    # teamFilter is a second section filter applied after section
    if _is_filter_value(query.team_filter):
        stmt = stmt.where(Thread.section == query.team_filter)

    for tag in query.tags:
        if tag.strip():
            stmt = stmt.where(Thread.tags.icontains(tag.strip(), autoescape=True))

    stmt = stmt.group_by(Thread.id)

    if query.has_replies:
        stmt = stmt.having(func.count(distinct(Reply.id)) > 0)

    return stmt


def order_search_statement(stmt: Select, query: SearchQuery) -> Select:
    mode = sort_mode(query.sort_by)
    if mode is SortMode.REPLIES:
        ordering = [reply_count_col.desc()]
    elif mode is SortMode.RELEVANT:
        title_match = case((Thread.title.icontains(query.query, autoescape=True), 1), else_=2)
        ordering = [title_match.asc()]
    elif mode is SortMode.VIEWS:
        ordering = [Thread.views.desc()]
    else:
        ordering = []
    return stmt.order_by(*ordering, Thread.created_at.desc(), Thread.id.desc())


# ── Snippets ─────────────────────────────────────────────────

def make_snippet(text: str, match_index: int, match_length: int, context: int = SNIPPET_CONTEXT) -> str:
    start = max(0, match_index - context)
    end = min(len(text), match_index + match_length + context)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def generate_snippets(title: str, content: str, query: str) -> List[str]:
    """Context snippets around the first title and content match"""
    needle = query.lower()
    snippets = []
    idx = (title or "").lower().find(needle)
    if idx != -1:
        snippets.append("Title: " + make_snippet(title, idx, len(query)))
    idx = (content or "").lower().find(needle)
    if idx != -1:
        snippets.append("Content: " + make_snippet(content, idx, len(query)))
    return snippets


# ── Execution ────────────────────────────────────────────────

def _author_out(user: Optional[User]) -> Optional[AuthorOut]:
    if user is None:
        return None
    return AuthorOut(id=user.id, display_name=user.display_name or "", avatar_url=user.avatar_url)


def _result_out(thread: Thread, reply_count: int, last_reply_at: Optional[datetime], query: str) -> SearchResult:
    return SearchResult(
        id=thread.id,
        title=thread.title,
        content=thread.content or "",
        section=thread.section,
        tags=thread.tags or "",
        views=thread.views or 0,
        user_id=thread.user_id,
        created_at=as_utc(thread.created_at),
        author=_author_out(thread.author),
        replies=[
            ReplyOut(
                id=r.id,
                content=r.content,
                thread_id=r.thread_id,
                user_id=r.user_id,
                created_at=as_utc(r.created_at),
                author=_author_out(r.author),
            )
            for r in thread.replies
        ],
        reply_count=reply_count or 0,
        last_reply_at=as_utc(last_reply_at),
        matches=generate_snippets(thread.title, thread.content, query),
    )


async def search_threads(db: AsyncSession, query: SearchQuery, now: Optional[datetime] = None) -> SearchResultSet:
    filtered = build_search_statement(query, now)
    count_stmt = select(func.count()).select_from(filtered.subquery())

    stmt = order_search_statement(filtered, query).options(
        selectinload(Thread.author),
        selectinload(Thread.replies.and_(Reply.deleted_at.is_(None))).selectinload(Reply.author),
    )
    if SEARCH_MAX_RESULTS > 0:
        stmt = stmt.limit(SEARCH_MAX_RESULTS)

    try:
        total = (await db.execute(count_stmt)).scalar() or 0
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as exc:
        logger.error(f"Search failed (type={query.type.value}): {exc}")
        raise StoreError("Failed to search threads") from exc

    results = [_result_out(thread, count, last, query.query) for thread, count, last in rows]
    logger.debug(f"Search type={query.type.value} matched {total} thread(s)")
    return SearchResultSet(results=results, total=total, truncated=len(results) < total)
