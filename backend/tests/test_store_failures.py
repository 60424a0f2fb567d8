# tests/test_store_failures.py — Database failures surface as StoreError / HTTP 500
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import text

from activity_feed import get_user_activity
from activity_stats import get_user_stats
from errors import StoreError
from models import SearchType
from search_engine import SearchQuery, search_threads
from tests.conftest import get_auth_headers, make_thread


@pytest_asyncio.fixture
async def broken_store(db_session, test_user):
    """Threads survive but the replies table is gone, so every two-stream query fails"""
    await make_thread(db_session, test_user, "Survivor")
    await db_session.execute(text("DROP TABLE replies"))
    await db_session.commit()
    return test_user


@pytest.mark.asyncio
async def test_stats_fail_whole(db_session, broken_store):
    """A failing query aborts the aggregation instead of returning partial stats"""
    with pytest.raises(StoreError) as excinfo:
        await get_user_stats(db_session, broken_store.id, include_private=False)
    assert excinfo.value.detail == "Failed to fetch user stats"
    assert excinfo.value.__cause__ is not None


@pytest.mark.asyncio
async def test_feed_fails_with_store_error(db_session, broken_store):
    with pytest.raises(StoreError):
        await get_user_activity(db_session, broken_store.id, page=1, page_size=10)


@pytest.mark.asyncio
async def test_search_fails_with_store_error(db_session, broken_store):
    with pytest.raises(StoreError):
        await search_threads(db_session, SearchQuery(type=SearchType.TITLE, query="Survivor"))


@pytest.mark.asyncio
async def test_stats_endpoint_returns_500_envelope(client: AsyncClient, broken_store):
    res = await client.get("/api/v1/profile/stats", headers=get_auth_headers(broken_store))
    assert res.status_code == 500
    data = res.json()
    assert set(data) == {"detail", "request_id"}
    assert data["detail"] == "Failed to fetch user stats"
    assert data["request_id"] == res.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_feed_endpoint_returns_500_envelope(client: AsyncClient, broken_store):
    res = await client.get(f"/api/v1/users/{broken_store.id}/activity", headers=get_auth_headers(broken_store))
    assert res.status_code == 500
    assert res.json()["detail"] == "Failed to fetch user activity"
