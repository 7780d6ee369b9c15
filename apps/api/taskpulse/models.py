from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UtcDateTime(TypeDecorator):
  """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo on the way back)."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value, dialect):
    if value is None:
      return None
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    if dialect.name == "sqlite":
      return value.replace(tzinfo=None)
    return value

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
  email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String(50), nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String(100), nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  due_date: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)
  priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium", index=True)
  status: Mapped[str] = mapped_column(String(16), nullable=False, default="To Do", index=True)
  creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  assigned_to_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)

  creator: Mapped[User] = relationship(foreign_keys=[creator_id], lazy="raise")
  assignee: Mapped[User | None] = relationship(foreign_keys=[assigned_to_id], lazy="raise")

  # UPDATE ... WHERE version = <loaded>; a concurrent writer makes the flush raise StaleDataError.
  __mapper_args__ = {"version_id_col": version, "version_id_generator": lambda v: 0 if v is None else v + 1}


class Notification(Base):
  __tablename__ = "notifications"
  __table_args__ = (Index("ix_notifications_user_read", "user_id", "read"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  task_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
  read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False, index=True)

  task: Mapped[Task | None] = relationship(lazy="raise")


class AuditLog(Base):
  __tablename__ = "audit_logs"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  # No FK: DELETED entries outlive the task they describe.
  task_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  action: Mapped[str] = mapped_column(String(32), nullable=False)
  previous_value: Mapped[str | None] = mapped_column(Text, nullable=True)
  new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)

  actor: Mapped[User] = relationship(lazy="raise")
