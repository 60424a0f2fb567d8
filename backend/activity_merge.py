"""
Dated-record combinator.

Threads and replies are two independent streams of dated records. Last-active,
the monthly activity map and the feed all need the same thing: the streams
stacked into one relation (UNION ALL) and then reduced. Every source select
must expose a ``created_at`` column; extra columns are allowed as long as all
sources agree on them.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import Select, Subquery, func, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops the offset on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def combine_dated(*sources: Select, name: str = "combined_activity") -> Subquery:
    if not sources:
        raise ValueError("combine_dated needs at least one source")
    return union_all(*sources).subquery(name)


async def count_combined(db: AsyncSession, combined: Subquery) -> int:
    result = await db.execute(select(func.count()).select_from(combined))
    return result.scalar() or 0


async def latest_combined(db: AsyncSession, combined: Subquery, default: datetime = EPOCH) -> datetime:
    """Most recent created_at across all sources, or ``default`` when empty"""
    result = await db.execute(select(func.max(combined.c.created_at)))
    latest = result.scalar()
    return as_utc(latest) if latest is not None else default


def month_bucket(column, dialect_name: str):
    """YYYY-MM of a timestamp column, in UTC, for the connected dialect"""
    if dialect_name == "postgresql":
        return func.to_char(func.timezone("UTC", column), "YYYY-MM")
    if dialect_name == "sqlite":
        # stored as naive UTC text
        return func.strftime("%Y-%m", column)
    raise NotImplementedError(f"No month bucketing for dialect {dialect_name!r}")


async def monthly_combined(db: AsyncSession, combined: Subquery) -> Dict[str, int]:
    """Count records per YYYY-MM, newest month first"""
    dialect_name = db.get_bind().dialect.name
    months = select(month_bucket(combined.c.created_at, dialect_name).label("month")).subquery("months")
    stmt = (
        select(months.c.month, func.count().label("count"))
        .group_by(months.c.month)
        .order_by(months.c.month.desc())
    )
    result = await db.execute(stmt)
    return {month: count for month, count in result.all()}
