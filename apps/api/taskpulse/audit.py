from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskpulse.models import AuditLog

CREATED = "CREATED"
STATUS_CHANGED = "STATUS_CHANGED"
PRIORITY_CHANGED = "PRIORITY_CHANGED"
ASSIGNEE_CHANGED = "ASSIGNEE_CHANGED"
DELETED = "DELETED"

UNASSIGNED = "Unassigned"


async def write_audit(
  db: AsyncSession,
  *,
  task_id: str,
  actor_id: str,
  action: str,
  previous_value: str | None = None,
  new_value: str | None = None,
) -> AuditLog:
  """Stage an append-only audit row; the caller's commit makes it durable alongside the change it records."""
  entry = AuditLog(
    task_id=task_id,
    user_id=actor_id,
    action=action,
    previous_value=previous_value,
    new_value=new_value,
  )
  db.add(entry)
  return entry


async def list_task_audit(db: AsyncSession, task_id: str) -> list[AuditLog]:
  res = await db.execute(
    select(AuditLog)
    .options(selectinload(AuditLog.actor))
    .where(AuditLog.task_id == task_id)
    .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
  )
  return list(res.scalars().all())
