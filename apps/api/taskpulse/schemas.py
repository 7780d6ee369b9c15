from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Priority = Literal["Low", "Medium", "High", "Urgent"]
Status = Literal["To Do", "In Progress", "Review", "Completed"]

PRIORITY_RANK: dict[str, int] = {"Low": 0, "Medium": 1, "High": 2, "Urgent": 3}

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _parse_dt_utc(value: object) -> object:
  if value is None or isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    try:
      if _DATE_ONLY_RE.fullmatch(s):
        dt = datetime.fromisoformat(s)
      else:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
      raise ValueError("Invalid date format") from None
  else:
    return value

  if dt is None:
    return None
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _normalize_email(value: object) -> object:
  if not isinstance(value, str):
    return value
  email = value.strip().lower()
  if not _EMAIL_RE.fullmatch(email):
    raise ValueError("Invalid email format")
  return email


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  createdAt: datetime | None = None


class UserSummaryOut(BaseModel):
  id: str
  name: str
  email: str


class RegisterIn(BaseModel):
  email: str = Field(min_length=1, max_length=320)
  name: str = Field(min_length=1, max_length=50)
  password: str = Field(min_length=6, max_length=100)

  @field_validator("email")
  @classmethod
  def _email(cls, v: str) -> object:
    return _normalize_email(v)

  @field_validator("name")
  @classmethod
  def _name(cls, v: str) -> str:
    v = v.strip()
    if not v:
      raise ValueError("Name is required")
    return v


class LoginIn(BaseModel):
  email: str = Field(min_length=1, max_length=320)
  password: str = Field(min_length=1)

  @field_validator("email")
  @classmethod
  def _email(cls, v: str) -> object:
    return _normalize_email(v)


class ProfileUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=50)
  email: str | None = Field(default=None, min_length=1, max_length=320)

  @field_validator("email")
  @classmethod
  def _email(cls, v: str | None) -> object:
    return _normalize_email(v)


class AuthOut(BaseModel):
  user: UserOut
  token: str


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=100)
  description: str = Field(min_length=1)
  dueDate: datetime
  priority: Priority = "Medium"
  status: Status = "To Do"
  assignedToId: str | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)

  @field_validator("assignedToId", mode="before")
  @classmethod
  def _blank_assignee(cls, v: object) -> object:
    if isinstance(v, str) and not v.strip():
      return None
    return v


class TaskUpdateIn(BaseModel):
  version: int | None = None
  title: str | None = Field(default=None, min_length=1, max_length=100)
  description: str | None = Field(default=None, min_length=1)
  dueDate: datetime | None = None
  priority: Priority | None = None
  status: Status | None = None
  assignedToId: str | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)

  @field_validator("assignedToId", mode="before")
  @classmethod
  def _blank_assignee(cls, v: object) -> object:
    if isinstance(v, str) and not v.strip():
      return None
    return v


class TaskFilterIn(BaseModel):
  status: Status | None = None
  priority: Priority | None = None
  sortBy: Literal["dueDate", "createdAt", "priority"] = "createdAt"
  sortOrder: Literal["asc", "desc"] = "desc"
  assignedToMe: bool = False
  createdByMe: bool = False
  overdue: bool = False


class TaskOut(BaseModel):
  id: str
  title: str
  description: str
  dueDate: datetime
  priority: Priority
  status: Status
  creatorId: str
  assignedToId: str | None
  creator: UserSummaryOut
  assignee: UserSummaryOut | None
  version: int
  createdAt: datetime
  updatedAt: datetime


class TaskUpdateOut(TaskOut):
  changes: list[str]


class DashboardOut(BaseModel):
  assignedToMe: list[TaskOut]
  createdByMe: list[TaskOut]
  overdue: list[TaskOut]


class AuditOut(BaseModel):
  id: str
  taskId: str
  userId: str
  user: UserSummaryOut | None = None
  action: str
  previousValue: str | None
  newValue: str | None
  createdAt: datetime


class NotificationTaskOut(BaseModel):
  id: str
  title: str


class NotificationOut(BaseModel):
  id: str
  userId: str
  message: str
  taskId: str | None
  task: NotificationTaskOut | None = None
  read: bool
  createdAt: datetime


class NotificationListOut(BaseModel):
  notifications: list[NotificationOut]
  unreadCount: int
