from __future__ import annotations

from fastapi import APIRouter, Depends, status

from taskpulse.deps import get_current_user, get_task_service
from taskpulse.models import User
from taskpulse.responses import ok
from taskpulse.schemas import DashboardOut, TaskCreateIn, TaskFilterIn, TaskUpdateIn, TaskUpdateOut
from taskpulse.tasks.service import TaskService, audit_out, task_out

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("")
async def list_tasks(
  filters: TaskFilterIn = Depends(),
  user: User = Depends(get_current_user),
  svc: TaskService = Depends(get_task_service),
) -> dict:
  tasks = [task_out(t) for t in await svc.list_tasks(filters, user_id=user.id)]
  return ok(tasks, count=len(tasks))


@router.get("/dashboard")
async def dashboard(user: User = Depends(get_current_user), svc: TaskService = Depends(get_task_service)) -> dict:
  data = await svc.get_dashboard(user.id)
  return ok(DashboardOut(**{k: [task_out(t) for t in v] for k, v in data.items()}))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  svc: TaskService = Depends(get_task_service),
) -> dict:
  t = await svc.create_task(payload, creator_id=user.id)
  return ok(task_out(t), message="Task created successfully")


@router.get("/{task_id}")
async def get_task(task_id: str, _user: User = Depends(get_current_user), svc: TaskService = Depends(get_task_service)) -> dict:
  return ok(task_out(await svc.get_task(task_id)))


@router.put("/{task_id}")
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  svc: TaskService = Depends(get_task_service),
) -> dict:
  t, changes = await svc.update_task(task_id, payload, actor_id=user.id)
  return ok(TaskUpdateOut(**task_out(t).model_dump(), changes=changes), message="Task updated successfully")


@router.delete("/{task_id}")
async def delete_task(task_id: str, user: User = Depends(get_current_user), svc: TaskService = Depends(get_task_service)) -> dict:
  await svc.delete_task(task_id, actor_id=user.id)
  return ok(message="Task deleted successfully")


@router.get("/{task_id}/audit")
async def task_audit(task_id: str, _user: User = Depends(get_current_user), svc: TaskService = Depends(get_task_service)) -> dict:
  return ok([audit_out(e, e.actor) for e in await svc.list_audit(task_id)])
