from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import Select, case, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from taskpulse.audit import (
  ASSIGNEE_CHANGED,
  CREATED,
  DELETED,
  PRIORITY_CHANGED,
  STATUS_CHANGED,
  UNASSIGNED,
  list_task_audit,
  write_audit,
)
from taskpulse.db import SessionLocal
from taskpulse.errors import ConflictError, ForbiddenError, NotFoundError
from taskpulse.models import AuditLog, Task, User, utcnow
from taskpulse.notifications.service import create_notification
from taskpulse.realtime.hub import Delivery, FanoutHub, task_channel, user_channel
from taskpulse.schemas import (
  PRIORITY_RANK,
  AuditOut,
  TaskCreateIn,
  TaskFilterIn,
  TaskOut,
  TaskUpdateIn,
  UserSummaryOut,
)

logger = logging.getLogger(__name__)

COMPLETED = "Completed"


def user_summary(u: User | None) -> UserSummaryOut | None:
  if u is None:
    return None
  return UserSummaryOut(id=u.id, name=u.name, email=u.email)


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    title=t.title,
    description=t.description,
    dueDate=t.due_date,
    priority=t.priority,
    status=t.status,
    creatorId=t.creator_id,
    assignedToId=t.assigned_to_id,
    creator=user_summary(t.creator),
    assignee=user_summary(t.assignee),
    version=t.version,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


def audit_out(e: AuditLog, actor: User | None = None) -> AuditOut:
  return AuditOut(
    id=e.id,
    taskId=e.task_id,
    userId=e.user_id,
    user=user_summary(actor),
    action=e.action,
    previousValue=e.previous_value,
    newValue=e.new_value,
    createdAt=e.created_at,
  )


def _with_people(q: Select) -> Select:
  return q.options(selectinload(Task.creator), selectinload(Task.assignee))


class TaskService:
  """
  Task create/update/delete with their side effects.

  Each mutation stages the task write, its audit rows and any notification in
  the request session and commits them together, so a failure part-way leaves
  nothing behind. Real-time events go out only after the commit, through the
  injected hub, and never hold up the caller.
  """

  def __init__(self, db: AsyncSession, *, events: FanoutHub, session_factory: async_sessionmaker | None = None) -> None:
    self.db = db
    self.events = events
    self.session_factory = session_factory or SessionLocal

  async def _require_user(self, user_id: str) -> User:
    res = await self.db.execute(select(User).where(User.id == user_id))
    u = res.scalar_one_or_none()
    if not u:
      raise NotFoundError("Assigned user not found")
    return u

  async def _get_bare(self, task_id: str) -> Task:
    res = await self.db.execute(select(Task).where(Task.id == task_id))
    t = res.scalar_one_or_none()
    if not t:
      raise NotFoundError("Task not found")
    return t

  async def _load(self, task_id: str) -> Task:
    res = await self.db.execute(
      _with_people(select(Task)).where(Task.id == task_id).execution_options(populate_existing=True)
    )
    t = res.scalar_one_or_none()
    if not t:
      raise NotFoundError("Task not found")
    return t

  async def get_task(self, task_id: str) -> Task:
    return await self._load(task_id)

  async def create_task(self, payload: TaskCreateIn, *, creator_id: str) -> Task:
    if payload.assignedToId:
      await self._require_user(payload.assignedToId)

    t = Task(
      title=payload.title,
      description=payload.description,
      due_date=payload.dueDate,
      priority=payload.priority,
      status=payload.status,
      creator_id=creator_id,
      assigned_to_id=payload.assignedToId,
    )
    self.db.add(t)
    await self.db.flush()

    message: str | None = None
    if payload.assignedToId and payload.assignedToId != creator_id:
      message = f'You have been assigned a new task: "{t.title}"'
      await create_notification(self.db, user_id=payload.assignedToId, message=message, task_id=t.id)

    entry = await write_audit(self.db, task_id=t.id, actor_id=creator_id, action=CREATED, new_value=t.title)
    await self.db.commit()
    logger.info("task %s created by %s (assignee=%s)", t.id, creator_id, payload.assignedToId)

    t = await self._load(t.id)
    deliveries = [Delivery("task:created", task_out(t).model_dump(mode="json"))]
    if message:
      deliveries.append(Delivery("notification:new", {"message": message, "taskId": t.id}, user_channel(payload.assignedToId)))
    deliveries.append(Delivery("audit:new", audit_out(entry).model_dump(mode="json"), task_channel(t.id)))
    self.events.dispatch(deliveries)
    return t

  async def update_task(self, task_id: str, payload: TaskUpdateIn, *, actor_id: str) -> tuple[Task, list[str]]:
    t = await self._get_bare(task_id)
    if payload.version is not None and payload.version != t.version:
      raise ConflictError("Version conflict", details={"currentVersion": t.version})

    fields_set = payload.model_fields_set
    changes: list[str] = []
    entries: list[AuditLog] = []

    if payload.status is not None and payload.status != t.status:
      changes.append("status")
      entries.append(
        await write_audit(self.db, task_id=t.id, actor_id=actor_id, action=STATUS_CHANGED, previous_value=t.status, new_value=payload.status)
      )

    if payload.priority is not None and payload.priority != t.priority:
      changes.append("priority")
      entries.append(
        await write_audit(
          self.db, task_id=t.id, actor_id=actor_id, action=PRIORITY_CHANGED, previous_value=t.priority, new_value=payload.priority
        )
      )

    message: str | None = None
    new_assignee: str | None = t.assigned_to_id
    if "assignedToId" in fields_set:
      old_assignee = t.assigned_to_id or None
      new_assignee = payload.assignedToId or None
      if old_assignee != new_assignee:
        changes.append("assignee")
        if new_assignee:
          await self._require_user(new_assignee)
          message = f'You have been assigned to task: "{t.title}"'
          await create_notification(self.db, user_id=new_assignee, message=message, task_id=t.id)
        entries.append(
          await write_audit(
            self.db,
            task_id=t.id,
            actor_id=actor_id,
            action=ASSIGNEE_CHANGED,
            previous_value=old_assignee or UNASSIGNED,
            new_value=new_assignee or UNASSIGNED,
          )
        )

    if payload.title is not None:
      t.title = payload.title
    if payload.description is not None:
      t.description = payload.description
    if payload.dueDate is not None:
      t.due_date = payload.dueDate
    if payload.priority is not None:
      t.priority = payload.priority
    if payload.status is not None:
      t.status = payload.status
    t.assigned_to_id = new_assignee
    # always emit the UPDATE so the version moves even when nothing else changed
    t.updated_at = utcnow()
    try:
      await self.db.commit()
    except StaleDataError:
      await self.db.rollback()
      res = await self.db.execute(select(Task.version).where(Task.id == task_id))
      raise ConflictError("Version conflict", details={"currentVersion": res.scalar_one_or_none()}) from None
    logger.info("task %s updated by %s (changes=%s)", t.id, actor_id, ",".join(changes) or "-")

    t = await self._load(t.id)
    out = task_out(t).model_dump(mode="json")
    deliveries = [Delivery("task:updated", {"task": out, "changes": changes})]
    if "assignee" in changes and t.assigned_to_id and message:
      deliveries.append(Delivery("notification:new", {"message": message, "taskId": t.id}, user_channel(t.assigned_to_id)))
    for e in entries:
      deliveries.append(Delivery("audit:new", audit_out(e).model_dump(mode="json"), task_channel(t.id)))
    self.events.dispatch(deliveries)
    return t, changes

  async def delete_task(self, task_id: str, *, actor_id: str) -> None:
    t = await self._get_bare(task_id)
    if t.creator_id != actor_id:
      raise ForbiddenError("Only the task creator can delete this task")

    title = t.title
    await self.db.execute(delete(Task).where(Task.id == task_id))
    entry = await write_audit(self.db, task_id=task_id, actor_id=actor_id, action=DELETED, previous_value=title)
    await self.db.commit()
    logger.info("task %s deleted by %s", task_id, actor_id)

    self.events.dispatch(
      [
        Delivery("task:deleted", {"taskId": task_id}),
        Delivery("audit:new", audit_out(entry).model_dump(mode="json"), task_channel(task_id)),
      ]
    )

  async def list_tasks(self, filters: TaskFilterIn, *, user_id: str) -> list[Task]:
    q = _with_people(select(Task))
    if filters.status:
      q = q.where(Task.status == filters.status)
    if filters.priority:
      q = q.where(Task.priority == filters.priority)
    if filters.assignedToMe:
      q = q.where(Task.assigned_to_id == user_id)
    if filters.createdByMe:
      q = q.where(Task.creator_id == user_id)
    if filters.overdue:
      q = q.where(Task.due_date < datetime.now(timezone.utc), Task.status != COMPLETED)

    if filters.sortBy == "priority":
      key = case(PRIORITY_RANK, value=Task.priority, else_=-1)
    elif filters.sortBy == "dueDate":
      key = Task.due_date
    else:
      key = Task.created_at
    q = q.order_by(key.asc() if filters.sortOrder == "asc" else key.desc(), Task.created_at.desc())
    res = await self.db.execute(q)
    return list(res.scalars().all())

  async def _fetch(self, q: Select) -> list[Task]:
    async with self.session_factory() as s:
      res = await s.execute(q)
      return list(res.scalars().all())

  async def get_dashboard(self, user_id: str) -> dict[str, list[Task]]:
    now = datetime.now(timezone.utc)
    assigned_q = _with_people(select(Task)).where(Task.assigned_to_id == user_id).order_by(Task.due_date.asc())
    created_q = _with_people(select(Task)).where(Task.creator_id == user_id).order_by(Task.created_at.desc())
    overdue_q = (
      _with_people(select(Task))
      .where(
        or_(Task.assigned_to_id == user_id, Task.creator_id == user_id),
        Task.due_date < now,
        Task.status != COMPLETED,
      )
      .order_by(Task.due_date.asc())
    )
    # Independent reads, one session each so they can run side by side.
    assigned, created, overdue = await asyncio.gather(
      self._fetch(assigned_q),
      self._fetch(created_q),
      self._fetch(overdue_q),
    )
    return {"assignedToMe": assigned, "createdByMe": created, "overdue": overdue}

  async def list_audit(self, task_id: str) -> list[AuditLog]:
    await self._get_bare(task_id)
    return await list_task_audit(self.db, task_id)
