from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from taskpulse.config import settings


def _engine_kwargs(url: str) -> dict:
  # aiosqlite connections must not be shared between event loops (TestClient runs its own).
  if url.startswith("sqlite"):
    return {"poolclass": NullPool}
  return {"pool_pre_ping": True}


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


if settings.database_url.startswith("sqlite"):

  @event.listens_for(engine.sync_engine, "connect")
  def _sqlite_foreign_keys(dbapi_conn, _record) -> None:
    # ON DELETE SET NULL on notifications.task_id needs this on SQLite.
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()
