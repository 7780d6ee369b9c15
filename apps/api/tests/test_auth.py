from __future__ import annotations

import time

import pytest
from httpx import AsyncClient

from conftest import PASSWORD, api, bearer, register
from taskpulse.config import settings
from taskpulse.security import issue_access_token


@pytest.mark.anyio
async def test_register_sets_cookie_and_normalizes_email(client: AsyncClient) -> None:
  res = await client.post(api("/auth/register"), json={"email": "  Ada@Example.COM ", "name": "Ada", "password": PASSWORD})
  assert res.status_code == 201, res.text
  body = res.json()["data"]
  assert body["user"]["email"] == "ada@example.com"
  assert body["user"]["name"] == "Ada"
  assert "password" not in body["user"] and "passwordHash" not in body["user"]
  assert body["token"]
  cookie = res.headers.get("set-cookie")
  assert cookie and "token=" in cookie and "httponly" in cookie.lower()


@pytest.mark.anyio
async def test_register_duplicate_email_conflicts(client: AsyncClient) -> None:
  await register(client, "ada@example.com", "Ada")
  res = await client.post(api("/auth/register"), json={"email": "ADA@example.com", "name": "Other", "password": PASSWORD})
  assert res.status_code == 409, res.text
  assert res.json() == {"success": False, "error": "Email already registered"}


@pytest.mark.anyio
async def test_register_validation_errors_use_envelope(client: AsyncClient) -> None:
  res = await client.post(api("/auth/register"), json={"email": "not-an-email", "name": "", "password": "123"})
  assert res.status_code == 400, res.text
  body = res.json()
  assert body["success"] is False
  assert body["error"] == "Validation error"
  joined = " ".join(body["details"])
  assert "email" in joined and "password" in joined and "name" in joined


@pytest.mark.anyio
async def test_login_and_me_with_bearer_and_cookie(client: AsyncClient) -> None:
  ada = await register(client, "ada@example.com", "Ada")

  bad = await client.post(api("/auth/login"), json={"email": "ada@example.com", "password": "wrong-password"})
  assert bad.status_code == 401
  assert bad.json()["error"] == "Invalid email or password"

  missing = await client.post(api("/auth/login"), json={"email": "nobody@example.com", "password": PASSWORD})
  assert missing.status_code == 401
  assert missing.json()["error"] == "Invalid email or password"

  ok = await client.post(api("/auth/login"), json={"email": "ada@example.com", "password": PASSWORD})
  assert ok.status_code == 200, ok.text
  assert ok.json()["data"]["user"]["id"] == ada["id"]

  # cookie from the login response
  me = await client.get(api("/auth/me"))
  assert me.status_code == 200, me.text
  assert me.json()["data"]["email"] == "ada@example.com"

  client.cookies.clear()
  me = await client.get(api("/auth/me"), headers=bearer(ok.json()["data"]["token"]))
  assert me.status_code == 200
  assert me.json()["data"]["id"] == ada["id"]


@pytest.mark.anyio
async def test_bearer_header_wins_over_cookie(client: AsyncClient) -> None:
  ada = await register(client, "ada@example.com", "Ada")
  await register(client, "bob@example.com", "Bob")
  login = await client.post(api("/auth/login"), json={"email": "bob@example.com", "password": PASSWORD})
  assert login.status_code == 200
  me = await client.get(api("/auth/me"), headers=ada["headers"])
  assert me.json()["data"]["id"] == ada["id"]


@pytest.mark.anyio
async def test_missing_invalid_and_expired_tokens(client: AsyncClient) -> None:
  ada = await register(client, "ada@example.com", "Ada")

  res = await client.get(api("/auth/me"))
  assert res.status_code == 401
  assert res.json() == {"success": False, "error": "Authentication required. Please log in."}

  res = await client.get(api("/auth/me"), headers=bearer("garbage"))
  assert res.status_code == 401
  assert res.json()["error"] == "Invalid token. Please log in again."

  stale = issue_access_token(ada["id"], "ada@example.com", issued_at=int(time.time()) - settings.access_token_ttl_seconds - 60)
  res = await client.get(api("/auth/me"), headers=bearer(stale))
  assert res.status_code == 401
  assert res.json()["error"] == "Token expired. Please log in again."


@pytest.mark.anyio
async def test_logout_clears_cookie(client: AsyncClient) -> None:
  await register(client, "ada@example.com", "Ada")
  await client.post(api("/auth/login"), json={"email": "ada@example.com", "password": PASSWORD})
  res = await client.post(api("/auth/logout"))
  assert res.status_code == 200
  assert res.json() == {"success": True, "message": "Logged out successfully"}
  assert 'token=""' in res.headers.get("set-cookie", "") or "Max-Age=0" in res.headers.get("set-cookie", "")
  assert (await client.get(api("/auth/me"))).status_code == 401


@pytest.mark.anyio
async def test_update_profile_and_email_conflict(client: AsyncClient) -> None:
  ada = await register(client, "ada@example.com", "Ada")
  await register(client, "bob@example.com", "Bob")

  res = await client.put(api("/auth/profile"), json={"name": "Ada Lovelace"}, headers=ada["headers"])
  assert res.status_code == 200, res.text
  assert res.json()["data"]["name"] == "Ada Lovelace"

  res = await client.put(api("/auth/profile"), json={"email": "BOB@example.com"}, headers=ada["headers"])
  assert res.status_code == 409
  assert res.json()["error"] == "Email already in use"

  res = await client.put(api("/auth/profile"), json={"email": "ada.l@example.com"}, headers=ada["headers"])
  assert res.status_code == 200
  assert res.json()["data"]["email"] == "ada.l@example.com"


@pytest.mark.anyio
async def test_list_users_returns_summaries(client: AsyncClient) -> None:
  ada = await register(client, "ada@example.com", "Ada")
  await register(client, "bob@example.com", "Bob")
  res = await client.get(api("/auth/users"), headers=ada["headers"])
  assert res.status_code == 200, res.text
  users = res.json()["data"]
  assert [u["name"] for u in users] == ["Ada", "Bob"]
  assert set(users[0].keys()) == {"id", "name", "email"}


@pytest.mark.anyio
async def test_login_rate_limited(client: AsyncClient) -> None:
  orig_ip = settings.rate_limit_login_ip_per_minute
  orig_email = settings.rate_limit_login_email_per_minute
  settings.rate_limit_login_ip_per_minute = 3
  settings.rate_limit_login_email_per_minute = 3
  try:
    for _ in range(3):
      r = await client.post(api("/auth/login"), json={"email": "nobody@example.com", "password": "badpass"})
      assert r.status_code == 401, r.text
    r = await client.post(api("/auth/login"), json={"email": "nobody@example.com", "password": "badpass"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
    assert r.json()["details"]["retryAfterSeconds"] >= 1
  finally:
    settings.rate_limit_login_ip_per_minute = orig_ip
    settings.rate_limit_login_email_per_minute = orig_email


@pytest.mark.anyio
async def test_health_reports_counters(client: AsyncClient) -> None:
  res = await client.get("/health")
  assert res.status_code == 200
  body = res.json()
  assert body["ok"] is True
  assert body["realtimeConnections"] == 0
  assert "p95LatencyMs24h" in body
  assert res.headers["x-content-type-options"] == "nosniff"


@pytest.mark.anyio
async def test_unknown_route_uses_envelope(client: AsyncClient) -> None:
  res = await client.get(api("/nope"))
  assert res.status_code == 404
  assert res.json() == {"success": False, "error": "Not Found"}


@pytest.mark.anyio
async def test_unhandled_error_is_enveloped_and_counted(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  from httpx import ASGITransport

  from taskpulse.main import app
  from taskpulse.tasks.service import TaskService

  ada = await register(client, "ada@example.com", "Ada")

  async def _boom(self, filters, *, user_id):
    raise RuntimeError("database on fire")

  monkeypatch.setattr(TaskService, "list_tasks", _boom)
  before = (await client.get("/health")).json()["errorCount24h"]

  transport = ASGITransport(app=app, raise_app_exceptions=False)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    res = await c.get(api("/tasks"), headers=ada["headers"])
  assert res.status_code == 500
  assert res.json() == {"success": False, "error": "Internal server error"}
  assert "database on fire" not in res.text

  after = (await client.get("/health")).json()["errorCount24h"]
  assert after == before + 1
