# routers/roles.py — Roles, capability grants and role assignment
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from activity_feed import clamp_pagination
from activity_merge import as_utc
from auth import get_current_user, require_capability, CurrentUser
from database import get_db_session
from errors import NotFoundError
from models import Role, User
from permissions import Capability, capabilities_of, to_permission_map

router = APIRouter(prefix="/api/v1", tags=["Roles"])


# --- Schemas ---

class RoleOut(BaseModel):
    id: str
    name: str
    color: str
    capabilities: List[Capability]
    created_at: Optional[datetime] = None


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(default="#808080", pattern=r"^#[0-9A-Fa-f]{6}$")
    permissions: Dict[Capability, bool] = {}


class RoleAssign(BaseModel):
    role_id: str


class AdminUserOut(BaseModel):
    id: str
    email: str
    display_name: str
    verified: bool
    role: Optional[RoleOut] = None
    created_at: Optional[datetime] = None


class AdminUserPage(BaseModel):
    users: List[AdminUserOut]
    total: int
    page: int
    page_size: int


# --- Helpers ---

def _role_to_out(r: Role) -> RoleOut:
    return RoleOut(
        id=r.id,
        name=r.name,
        color=r.color,
        capabilities=sorted(capabilities_of(r), key=lambda c: c.value),
        created_at=as_utc(r.created_at),
    )


def _user_to_out(u: User) -> AdminUserOut:
    return AdminUserOut(
        id=u.id,
        email=u.email,
        display_name=u.display_name or "",
        verified=bool(u.verified),
        role=_role_to_out(u.role) if u.role else None,
        created_at=as_utc(u.created_at),
    )


# --- Roles ---

@router.get("/roles", response_model=List[RoleOut])
async def list_roles(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """List all roles with their capabilities"""
    result = await db.execute(select(Role).order_by(Role.created_at, Role.name))
    return [_role_to_out(r) for r in result.scalars().all()]


@router.post("/roles", response_model=RoleOut, status_code=201)
async def create_role(
    body: RoleCreate,
    user: CurrentUser = Depends(require_capability(Capability.MANAGE_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a role (requires can_manage_roles)"""
    existing = await db.execute(select(Role.id).where(Role.name == body.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=f"Role already exists: {body.name}")

    granted = [cap for cap, allowed in body.permissions.items() if allowed]
    role = Role(name=body.name, color=body.color, permissions=to_permission_map(granted))
    db.add(role)
    await db.commit()
    await db.refresh(role)
    return _role_to_out(role)


# --- User administration ---

@router.get("/admin/users", response_model=AdminUserPage)
async def list_users(
    page: int = Query(default=1),
    page_size: int = Query(default=10),
    user: CurrentUser = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db_session),
):
    """Paginated member list with roles (requires can_manage_users)"""
    page, page_size = clamp_pagination(page, page_size)

    total_result = await db.execute(select(func.count(User.id)).where(User.deleted_at.is_(None)))
    total = total_result.scalar() or 0

    stmt = (
        select(User)
        .options(selectinload(User.role))
        .where(User.deleted_at.is_(None))
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    users = [_user_to_out(u) for u in result.scalars().all()]
    return AdminUserPage(users=users, total=total, page=page, page_size=page_size)


@router.patch("/admin/users/{user_id}/role", response_model=AdminUserOut)
async def assign_role(
    user_id: str,
    body: RoleAssign,
    user: CurrentUser = Depends(require_capability(Capability.MANAGE_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    """Assign a role to a member (requires can_manage_roles)"""
    role = await db.get(Role, body.role_id)
    if not role:
        raise NotFoundError("Role not found")

    stmt = (
        select(User)
        .options(selectinload(User.role))
        .where(User.id == user_id, User.deleted_at.is_(None))
    )
    result = await db.execute(stmt)
    target = result.scalar_one_or_none()
    if not target:
        raise NotFoundError("User not found")

    target.role = role
    db.add(target)
    await db.commit()
    return _user_to_out(target)
