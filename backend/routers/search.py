# routers/search.py — Multi-criteria thread search
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from search_engine import SearchQuery, SearchResultSet, search_threads

router = APIRouter(prefix="/api/v1/search", tags=["Search"])


@router.get("", response_model=SearchResultSet)
async def search(
    type: Optional[str] = Query(default=None, description="title, content, user or tags"),
    query: Optional[str] = Query(default=None),
    section: Optional[str] = None,
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    has_replies: Optional[str] = Query(default=None, alias="hasReplies"),
    tags: Optional[List[str]] = Query(default=None, alias="tags[]"),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    team_filter: Optional[str] = Query(default=None, alias="teamFilter"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Search threads; malformed parameters are rejected before any query runs"""
    search_query = SearchQuery.from_params(
        type=type,
        query=query,
        section=section,
        date_range=date_range,
        has_replies=has_replies,
        tags=tags or [],
        sort_by=sort_by,
        team_filter=team_filter,
    )
    return await search_threads(db, search_query)
