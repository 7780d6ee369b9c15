from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from conftest import api, create_task, register
from taskpulse.config import settings
from taskpulse.db import SessionLocal
from taskpulse.notifications import service


@pytest.mark.anyio
async def test_mark_all_read_is_scoped_to_caller(client: AsyncClient) -> None:
  a = await register(client, "a@example.com", "User A")
  b = await register(client, "b@example.com", "User B")
  c = await register(client, "c@example.com", "User C")
  await create_task(client, a["headers"], title="one", assignedToId=b["id"])
  await create_task(client, a["headers"], title="two", assignedToId=b["id"])
  await create_task(client, a["headers"], title="three", assignedToId=c["id"])

  res = await client.put(api("/notifications/read-all"), headers=b["headers"])
  assert res.status_code == 200
  assert res.json() == {"success": True, "message": "All notifications marked as read"}

  mine = (await client.get(api("/notifications"), headers=b["headers"])).json()["data"]
  assert mine["unreadCount"] == 0
  assert all(n["read"] for n in mine["notifications"])

  theirs = (await client.get(api("/notifications"), headers=c["headers"])).json()["data"]
  assert theirs["unreadCount"] == 1


@pytest.mark.anyio
async def test_mark_read_only_for_owner(client: AsyncClient) -> None:
  a = await register(client, "a@example.com", "User A")
  b = await register(client, "b@example.com", "User B")
  await create_task(client, a["headers"], title="one", assignedToId=b["id"])
  [n] = (await client.get(api("/notifications"), headers=b["headers"])).json()["data"]["notifications"]

  res = await client.put(api(f"/notifications/{n['id']}/read"), headers=a["headers"])
  assert res.status_code == 404
  assert res.json()["error"] == "Notification not found"

  res = await client.put(api(f"/notifications/{n['id']}/read"), headers=b["headers"])
  assert res.status_code == 200, res.text
  assert res.json()["data"]["read"] is True
  assert res.json()["data"]["task"]["title"] == "one"
  assert (await client.get(api("/notifications"), headers=b["headers"])).json()["data"]["unreadCount"] == 0


@pytest.mark.anyio
async def test_list_is_newest_first_and_capped(client: AsyncClient) -> None:
  a = await register(client, "a@example.com", "User A")
  async with SessionLocal() as db:
    base = datetime.now(timezone.utc) - timedelta(hours=1)
    for i in range(settings.notification_list_limit + 5):
      n = await service.create_notification(db, user_id=a["id"], message=f"note {i}")
      n.created_at = base + timedelta(seconds=i)
    await db.commit()

  body = (await client.get(api("/notifications"), headers=a["headers"])).json()["data"]
  assert len(body["notifications"]) == settings.notification_list_limit
  assert body["notifications"][0]["message"] == f"note {settings.notification_list_limit + 4}"
  assert body["unreadCount"] == settings.notification_list_limit + 5
  assert body["notifications"][0]["taskId"] is None


@pytest.mark.anyio
async def test_service_mark_all_read_returns_count() -> None:
  from taskpulse.models import User
  from taskpulse.security import hash_password

  async with SessionLocal() as db:
    u = User(email="svc@example.com", name="Svc", password_hash=hash_password("secret123"))
    db.add(u)
    await db.flush()
    await service.create_notification(db, user_id=u.id, message="hello")
    await service.create_notification(db, user_id=u.id, message="again")
    await db.commit()
    assert await service.unread_count(db, u.id) == 2
    assert await service.mark_all_read(db, u.id) == 2
    assert await service.unread_count(db, u.id) == 0
    assert await service.mark_all_read(db, u.id) == 0
