# routers/profiles.py — Member profiles, activity statistics and activity feed
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from activity_feed import PaginatedActivity, clamp_pagination, get_user_activity
from activity_merge import as_utc
from activity_stats import UserActivityStats, get_user_stats
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFoundError
from models import User
from permissions import can_view_private_stats

router = APIRouter(prefix="/api/v1", tags=["Profiles"])


# --- Schemas ---

class RoleBadge(BaseModel):
    name: str
    color: str


class ProfileOut(BaseModel):
    id: str
    display_name: str
    email: Optional[str] = None  # only shown on private views
    bio: str = ""
    avatar_url: Optional[str] = None
    verified: bool = False
    role: Optional[RoleBadge] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    bio: Optional[str] = Field(default=None, max_length=2000)
    avatar_url: Optional[str] = Field(default=None, max_length=500)


# --- Helpers ---

async def _load_user(db: AsyncSession, user_id: str) -> User:
    stmt = (
        select(User)
        .options(selectinload(User.role))
        .where(User.id == user_id, User.deleted_at.is_(None))
    )
    result = await db.execute(stmt)
    target = result.scalar_one_or_none()
    if not target:
        raise NotFoundError("User not found")
    return target


def _profile_out(u: User, private: bool) -> ProfileOut:
    return ProfileOut(
        id=u.id,
        display_name=u.display_name or "",
        email=u.email if private else None,
        bio=u.bio or "",
        avatar_url=u.avatar_url,
        verified=bool(u.verified),
        role=RoleBadge(name=u.role.name, color=u.role.color) if u.role else None,
        created_at=as_utc(u.created_at),
    )


def _stats_payload(stats: UserActivityStats) -> dict:
    # Public stats omit the private sections entirely rather than sending nulls
    hidden = {name for name in ("metrics", "activity_map") if getattr(stats, name) is None}
    return stats.model_dump(mode="json", exclude=hidden)


async def _profile_with_stats(db: AsyncSession, target: User, private: bool) -> dict:
    stats = await get_user_stats(db, target.id, include_private=private)
    return {
        "profile": _profile_out(target, private).model_dump(mode="json"),
        "stats": _stats_payload(stats),
    }


# --- Own profile ---

@router.get("/profile")
async def get_own_profile(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Caller's profile with private statistics"""
    target = await _load_user(db, user.id)
    return await _profile_with_stats(db, target, private=True)


@router.patch("/profile")
async def update_own_profile(
    update: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update bio and/or avatar"""
    if update.bio is None and update.avatar_url is None:
        raise HTTPException(status_code=400, detail="No fields to update")

    target = await _load_user(db, user.id)
    if update.bio is not None:
        target.bio = update.bio
    if update.avatar_url is not None:
        target.avatar_url = update.avatar_url

    db.add(target)
    await db.commit()
    return await _profile_with_stats(db, target, private=True)


@router.get("/profile/stats")
async def get_own_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Caller's private statistics only"""
    stats = await get_user_stats(db, user.id, include_private=True)
    return _stats_payload(stats)


# --- Other members ---

@router.get("/users/{user_id}/profile")
async def get_user_profile(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """A member's profile. Private statistics for yourself or user managers."""
    target = await _load_user(db, user_id)
    private = can_view_private_stats(user.id, user.capabilities, target.id)
    return await _profile_with_stats(db, target, private=private)


@router.get("/users/{user_id}/activity", response_model=PaginatedActivity)
async def get_user_activity_feed(
    user_id: str,
    page: int = Query(default=1),
    page_size: int = Query(default=10),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Threads and replies of a member, newest first. An unknown member has an empty feed."""
    page, page_size = clamp_pagination(page, page_size)
    return await get_user_activity(db, user_id, page, page_size)
