from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Cookie, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.db import SessionLocal
from taskpulse.errors import UnauthorizedError
from taskpulse.models import User
from taskpulse.realtime.hub import FanoutHub
from taskpulse.security import ACCESS_COOKIE_NAME, TokenClaims, bearer_token, decode_access_token
from taskpulse.tasks.service import TaskService


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


def get_fanout(request: Request) -> FanoutHub:
  return request.app.state.fanout


def credential_from(authorization: str | None, cookie_token: str | None) -> str | None:
  # An explicit Authorization header wins over a cookie left behind by another login.
  return bearer_token(authorization) or (cookie_token or None)


async def get_claims(
  request: Request,
  token: str | None = Cookie(default=None, alias=ACCESS_COOKIE_NAME),
) -> TokenClaims:
  raw = credential_from(request.headers.get("authorization"), token)
  if not raw:
    raise UnauthorizedError("Authentication required. Please log in.")
  return decode_access_token(raw)


async def get_current_user(
  claims: TokenClaims = Depends(get_claims),
  db: AsyncSession = Depends(get_db),
) -> User:
  res = await db.execute(select(User).where(User.id == claims.user_id))
  u = res.scalar_one_or_none()
  if not u:
    raise UnauthorizedError("User not found")
  return u


async def get_task_service(
  db: AsyncSession = Depends(get_db),
  fanout: FanoutHub = Depends(get_fanout),
) -> TaskService:
  return TaskService(db, events=fanout, session_factory=SessionLocal)


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
