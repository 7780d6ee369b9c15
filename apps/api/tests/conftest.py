from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TEST_DB = Path(tempfile.gettempdir()) / "taskpulse_test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB}")
os.environ.setdefault("APP_SECRET", "taskpulse-test-secret")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from taskpulse.config import settings  # noqa: E402
from taskpulse.db import SessionLocal, engine  # noqa: E402
from taskpulse.main import app  # noqa: E402
from taskpulse.models import AuditLog, Base, Notification, Task, User  # noqa: E402
from taskpulse.rate_limit import limiter  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(scope="session", autouse=True)
async def _schema() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  yield
  await engine.dispose()


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  await app.state.fanout.drain()
  async with SessionLocal() as db:
    await db.execute(delete(Notification))
    await db.execute(delete(AuditLog))
    await db.execute(delete(Task))
    await db.execute(delete(User))
    await db.commit()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  if not settings.is_test_database():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. taskpulse_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def api(path: str) -> str:
  return f"{settings.api_prefix}{path}"


def bearer(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}


async def register(client: AsyncClient, email: str, name: str, password: str = PASSWORD) -> dict:
  """Registers a user and returns {"id", "token", "headers"}; drops the cookie so callers pick who they are."""
  res = await client.post(api("/auth/register"), json={"email": email, "name": name, "password": password})
  assert res.status_code == 201, res.text
  body = res.json()["data"]
  client.cookies.clear()
  return {"id": body["user"]["id"], "token": body["token"], "headers": bearer(body["token"])}


async def create_task(client: AsyncClient, headers: dict[str, str], **fields) -> dict:
  payload = {
    "title": "Write tests",
    "description": "Cover the mutation pipeline",
    "dueDate": "2030-01-15T12:00:00Z",
  }
  payload.update(fields)
  res = await client.post(api("/tasks"), json=payload, headers=headers)
  assert res.status_code == 201, res.text
  return res.json()["data"]
