# tests/test_permissions.py — Capability model and bootstrap roles
import pytest
from sqlalchemy import select, func

from models import Role
from permissions import (
    Capability, DEFAULT_ROLES, ADMIN_ROLE, MODERATOR_ROLE, MEMBER_ROLE,
    can_view_private_stats, capabilities_of, ensure_default_roles,
    has_capability, parse_capabilities, to_permission_map,
)


def test_parse_keeps_only_true_known_keys():
    granted = parse_capabilities({
        "can_reply": True,
        "can_pin_threads": False,
        "can_fly": True,
        "can_manage_users": "yes",
    })
    assert granted == frozenset({Capability.REPLY})


def test_missing_role_has_nothing():
    assert capabilities_of(None) == frozenset()
    assert has_capability(None, Capability.REPLY) is False


def test_permission_map_round_trip():
    caps = [Capability.DELETE_THREADS, Capability.PIN_THREADS]
    stored = to_permission_map(caps)
    assert stored == {"can_delete_threads": True, "can_pin_threads": True}
    assert parse_capabilities(stored) == frozenset(caps)


def test_private_stats_visibility():
    assert can_view_private_stats("u1", [], "u1") is True
    assert can_view_private_stats("u1", [Capability.REPLY], "u2") is False
    assert can_view_private_stats("u1", [Capability.MANAGE_USERS], "u2") is True


@pytest.mark.asyncio
async def test_seed_roles_have_expected_grants(db_session):
    roles = await ensure_default_roles(db_session)
    assert set(roles) == {ADMIN_ROLE, MODERATOR_ROLE, MEMBER_ROLE}

    admin = roles[ADMIN_ROLE]
    assert admin.color == "#FF4444"
    assert has_capability(admin, Capability.MANAGE_ROLES)
    assert not has_capability(admin, Capability.REPLY)

    assert capabilities_of(roles[MODERATOR_ROLE]) == frozenset(
        {Capability.DELETE_THREADS, Capability.PIN_THREADS}
    )
    assert capabilities_of(roles[MEMBER_ROLE]) == frozenset(
        {Capability.CREATE_THREADS, Capability.REPLY}
    )


@pytest.mark.asyncio
async def test_seeding_is_idempotent(db_session):
    first = await ensure_default_roles(db_session)
    first[MEMBER_ROLE].color = "#123456"
    await db_session.commit()

    second = await ensure_default_roles(db_session)
    count = (await db_session.execute(select(func.count(Role.id)))).scalar()
    assert count == len(DEFAULT_ROLES)
    assert second[MEMBER_ROLE].id == first[MEMBER_ROLE].id
    assert second[MEMBER_ROLE].color == "#123456"
