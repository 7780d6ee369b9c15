from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.config import settings
from taskpulse.deps import client_ip, get_current_user, get_db
from taskpulse.errors import ConflictError, UnauthorizedError
from taskpulse.models import User
from taskpulse.rate_limit import limiter
from taskpulse.responses import ok
from taskpulse.schemas import AuthOut, LoginIn, ProfileUpdateIn, RegisterIn, UserOut, UserSummaryOut
from taskpulse.security import ACCESS_COOKIE_NAME, hash_password, issue_access_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, createdAt=u.created_at)


def _set_token_cookie(response: Response, token: str) -> None:
  response.set_cookie(
    key=ACCESS_COOKIE_NAME,
    value=token,
    httponly=True,
    samesite="lax",
    secure=bool(settings.cookie_secure),
    domain=settings.cookie_domain,
    max_age=int(settings.access_token_ttl_seconds),
    path="/",
  )


async def _email_taken(db: AsyncSession, email: str, *, exclude_id: str | None = None) -> bool:
  q = select(User.id).where(User.email == email)
  if exclude_id:
    q = q.where(User.id != exclude_id)
  res = await db.execute(q)
  return res.first() is not None


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> dict:
  limiter.enforce(f"auth:register:ip:{client_ip(request)}", limit=int(settings.rate_limit_register_ip_per_minute))

  if await _email_taken(db, payload.email):
    raise ConflictError("Email already registered")

  u = User(email=payload.email, name=payload.name, password_hash=hash_password(payload.password))
  db.add(u)
  await db.commit()
  logger.info("user %s registered", u.id)

  token = issue_access_token(u.id, u.email)
  _set_token_cookie(response, token)
  return ok(AuthOut(user=_user_out(u), token=token), message="Registration successful")


@router.post("/login")
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> dict:
  ip = client_ip(request)
  limiter.enforce(f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute))
  limiter.enforce(f"auth:login:email:{payload.email}", limit=int(settings.rate_limit_login_email_per_minute))

  res = await db.execute(select(User).where(User.email == payload.email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("failed login for %s from %s", payload.email, ip)
    raise UnauthorizedError("Invalid email or password")

  token = issue_access_token(u.id, u.email)
  _set_token_cookie(response, token)
  return ok(AuthOut(user=_user_out(u), token=token), message="Login successful")


@router.post("/logout")
async def logout(response: Response) -> dict:
  response.delete_cookie(key=ACCESS_COOKIE_NAME, path="/", domain=settings.cookie_domain)
  return ok(message="Logged out successfully")


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> dict:
  return ok(_user_out(user))


@router.put("/profile")
async def update_profile(
  payload: ProfileUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  if payload.email and payload.email != user.email:
    if await _email_taken(db, payload.email, exclude_id=user.id):
      raise ConflictError("Email already in use")
    user.email = payload.email
  if payload.name is not None:
    user.name = payload.name.strip() or user.name
  await db.commit()
  return ok(_user_out(user), message="Profile updated successfully")


@router.get("/users")
async def list_users(_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(select(User).order_by(User.name.asc()))
  return ok([UserSummaryOut(id=u.id, name=u.name, email=u.email) for u in res.scalars().all()])
