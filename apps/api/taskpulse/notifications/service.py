from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskpulse.config import settings
from taskpulse.errors import NotFoundError
from taskpulse.models import Notification


async def create_notification(db: AsyncSession, *, user_id: str, message: str, task_id: str | None = None) -> Notification:
  n = Notification(user_id=user_id, message=message, task_id=task_id, read=False)
  db.add(n)
  return n


async def list_for_user(db: AsyncSession, user_id: str, *, limit: int | None = None) -> list[Notification]:
  limit = max(1, int(limit or settings.notification_list_limit))
  res = await db.execute(
    select(Notification)
    .options(selectinload(Notification.task))
    .where(Notification.user_id == user_id)
    .order_by(Notification.created_at.desc(), Notification.id.desc())
    .limit(limit)
  )
  return list(res.scalars().all())


async def unread_count(db: AsyncSession, user_id: str) -> int:
  res = await db.execute(
    select(func.count()).select_from(Notification).where(Notification.user_id == user_id, Notification.read.is_(False))
  )
  return int(res.scalar_one())


async def mark_read(db: AsyncSession, *, notification_id: str, user_id: str) -> Notification:
  res = await db.execute(
    select(Notification)
    .options(selectinload(Notification.task))
    .where(Notification.id == notification_id, Notification.user_id == user_id)
  )
  n = res.scalar_one_or_none()
  # Someone else's notification looks exactly like a missing one.
  if not n:
    raise NotFoundError("Notification not found")
  n.read = True
  await db.commit()
  return n


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
  res = await db.execute(
    update(Notification).where(Notification.user_id == user_id, Notification.read.is_(False)).values(read=True)
  )
  await db.commit()
  return int(res.rowcount or 0)
