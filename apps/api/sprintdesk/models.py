from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, TypeDecorator, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
  """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value, dialect):
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

  def process_result_value(self, value, dialect):
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="MEMBER")  # ADMIN | MEMBER
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class Sprint(Base):
  __tablename__ = "sprints"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
  end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  status: Mapped[str] = mapped_column(String, nullable=False, default="BACKLOG", index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)  # SPRINT_TASK | GENERAL_TASK
  priority: Mapped[str] = mapped_column(String, nullable=False, default="MEDIUM")
  start_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  due_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  sprint_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("sprints.id"), nullable=True, index=True)
  reporter_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  parent_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=True, index=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class TaskAssignee(Base):
  __tablename__ = "task_assignees"
  __table_args__ = (UniqueConstraint("task_id", "user_id", name="ux_task_assignees_task_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class StatusEvent(Base):
  __tablename__ = "status_events"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  actor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  from_status: Mapped[str] = mapped_column(String, nullable=False)
  to_status: Mapped[str] = mapped_column(String, nullable=False)
  at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class Comment(Base):
  __tablename__ = "comments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class Attachment(Base):
  __tablename__ = "attachments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  original_name: Mapped[str] = mapped_column(String, nullable=False)
  locator: Mapped[str] = mapped_column(String, nullable=False)
  mime_type: Mapped[str] = mapped_column(String, nullable=False)
  size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
  uploaded_by_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
