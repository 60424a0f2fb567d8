# permissions.py — Role capability model
# A role grants a fixed vocabulary of capabilities. The store keeps them as a
# JSON map {capability_name: bool}; in code they are a frozenset of Capability.

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Role

logger = logging.getLogger("forum.permissions")


class Capability(str, Enum):
    MANAGE_ROLES = "can_manage_roles"
    MANAGE_USERS = "can_manage_users"
    DELETE_THREADS = "can_delete_threads"
    PIN_THREADS = "can_pin_threads"
    CREATE_THREADS = "can_create_threads"
    REPLY = "can_reply"


# ============================================================
# SEED ROLES
# ============================================================

ADMIN_ROLE = "admin"
MODERATOR_ROLE = "moderator"
MEMBER_ROLE = "member"

DEFAULT_ROLES = {
    ADMIN_ROLE: {
        "color": "#FF4444",
        "capabilities": [
            Capability.MANAGE_ROLES, Capability.MANAGE_USERS,
            Capability.DELETE_THREADS, Capability.PIN_THREADS,
        ],
    },
    MODERATOR_ROLE: {
        "color": "#44AA44",
        "capabilities": [Capability.DELETE_THREADS, Capability.PIN_THREADS],
    },
    MEMBER_ROLE: {
        "color": "#808080",
        "capabilities": [Capability.CREATE_THREADS, Capability.REPLY],
    },
}


def to_permission_map(capabilities: Iterable[Capability]) -> Dict[str, bool]:
    """Serialise a capability set into the role's JSON column"""
    return {Capability(c).value: True for c in capabilities}


def parse_capabilities(permissions: Optional[Dict[str, bool]]) -> FrozenSet[Capability]:
    """Granted capabilities from a stored map. Unknown names and false values are dropped."""
    granted = set()
    for name, allowed in (permissions or {}).items():
        if allowed is not True:
            continue
        try:
            granted.add(Capability(name))
        except ValueError:
            logger.debug(f"Ignoring unknown capability {name!r}")
    return frozenset(granted)


def capabilities_of(role: Optional[Role]) -> FrozenSet[Capability]:
    if role is None:
        return frozenset()
    return parse_capabilities(role.permissions)


def has_capability(role: Optional[Role], capability: Capability) -> bool:
    return capability in capabilities_of(role)


def can_view_private_stats(viewer_id: str, viewer_capabilities: Iterable[Capability], subject_id: str) -> bool:
    """Private stats are visible on your own profile, or to user managers"""
    return viewer_id == subject_id or Capability.MANAGE_USERS in set(viewer_capabilities)


async def ensure_default_roles(db: AsyncSession) -> Dict[str, Role]:
    """Create any missing seed role. Existing roles are left untouched."""
    result = await db.execute(select(Role).where(Role.name.in_(list(DEFAULT_ROLES))))
    roles = {r.name: r for r in result.scalars().all()}

    for name, seed in DEFAULT_ROLES.items():
        if name in roles:
            continue
        role = Role(
            name=name,
            color=seed["color"],
            permissions=to_permission_map(seed["capabilities"]),
        )
        db.add(role)
        roles[name] = role
        logger.info(f"Created default role {name}")

    await db.commit()
    return roles
