# models.py — Relational schema for the university forum
# - UUID string primary keys
# - Roles carry a JSON capability map (see permissions.py)
# - Soft deletes on users, threads and replies

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class SearchType(str, PyEnum):
    TITLE = "title"
    CONTENT = "content"
    USER = "user"
    TAGS = "tags"


class DateRange(str, PyEnum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    SEMESTER = "semester"


class SortMode(str, PyEnum):
    RECENT = "recent"
    REPLIES = "replies"
    RELEVANT = "relevant"
    VIEWS = "views"


class ActivityKind(str, PyEnum):
    THREAD = "thread"
    REPLY = "reply"


# ============================================================
# ROLES
# ============================================================

class Role(Base):
    __tablename__ = "roles"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, unique=True, nullable=False, index=True)
    color = Column(String, nullable=False, default="#808080")
    permissions = Column(JSON, nullable=False, default=dict)  # {"can_reply": true, ...}
    created_at = Column(DateTime(timezone=True), default=utcnow)

    users = relationship("User", back_populates="role")


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=False, default="")
    role_id = Column(String, ForeignKey("roles.id"), nullable=True, index=True)
    verified = Column(Boolean, default=False)
    bio = Column(Text, nullable=False, default="")
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    role = relationship("Role", back_populates="users")
    threads = relationship("Thread", back_populates="author")
    replies = relationship("Reply", back_populates="author")


# ============================================================
# THREADS & REPLIES
# ============================================================

class Thread(Base):
    __tablename__ = "threads"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    section = Column(String, nullable=False, default="general", index=True)
    tags = Column(String, nullable=False, default="")  # comma-separated
    views = Column(Integer, nullable=False, default=0)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    author = relationship("User", back_populates="threads")
    replies = relationship("Reply", back_populates="thread", order_by="Reply.created_at")

    __table_args__ = (
        Index("idx_thread_user_created", "user_id", "created_at"),
        Index("idx_thread_deleted", "deleted_at", postgresql_where=Column("deleted_at").is_(None)),
    )


class Reply(Base):
    __tablename__ = "replies"

    id = Column(String, primary_key=True, default=new_uuid)
    content = Column(Text, nullable=False)
    thread_id = Column(String, ForeignKey("threads.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    thread = relationship("Thread", back_populates="replies")
    author = relationship("User", back_populates="replies")

    __table_args__ = (
        Index("idx_reply_user_created", "user_id", "created_at"),
        Index("idx_reply_deleted", "deleted_at", postgresql_where=Column("deleted_at").is_(None)),
    )
