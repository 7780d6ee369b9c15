from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.deps import get_current_user, get_db
from taskpulse.models import Notification, User
from taskpulse.notifications import service
from taskpulse.responses import ok
from taskpulse.schemas import NotificationListOut, NotificationOut, NotificationTaskOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_out(n: Notification) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    userId=n.user_id,
    message=n.message,
    taskId=n.task_id,
    task=NotificationTaskOut(id=n.task.id, title=n.task.title) if n.task else None,
    read=bool(n.read),
    createdAt=n.created_at,
  )


@router.get("")
async def list_notifications(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  items = await service.list_for_user(db, user.id)
  count = await service.unread_count(db, user.id)
  return ok(NotificationListOut(notifications=[_notification_out(n) for n in items], unreadCount=count))


@router.put("/read-all")
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await service.mark_all_read(db, user.id)
  return ok(message="All notifications marked as read")


@router.put("/{notification_id}/read")
async def mark_read(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  return ok(_notification_out(await service.mark_read(db, notification_id=notification_id, user_id=user.id)))
