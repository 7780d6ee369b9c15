from __future__ import annotations

import base64
import hashlib
import json
import time
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext

from taskpulse.config import settings
from taskpulse.errors import UnauthorizedError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.password_hash_rounds)

ACCESS_COOKIE_NAME = "token"


@dataclass(frozen=True)
class TokenClaims:
  user_id: str
  email: str


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def _fernet() -> Fernet:
  key = (settings.app_secret or "").encode("utf-8")
  # accept a real Fernet key, otherwise derive one from the secret
  try:
    return Fernet(key)
  except ValueError:
    return Fernet(base64.urlsafe_b64encode(hashlib.sha256(key).digest()))


def issue_access_token(user_id: str, email: str, *, issued_at: int | None = None) -> str:
  raw = json.dumps({"userId": user_id, "email": email}).encode("utf-8")
  f = _fernet()
  if issued_at is None:
    return f.encrypt(raw).decode("utf-8")
  return f.encrypt_at_time(raw, issued_at).decode("utf-8")


def decode_access_token(token: str) -> TokenClaims:
  """
  Verify signature and age of an access token.

  Raises UnauthorizedError, distinguishing an expired-but-genuine token from a forged or garbled one.
  """
  f = _fernet()
  data = (token or "").strip().encode("utf-8")
  if not data:
    raise UnauthorizedError("Authentication required. Please log in.")
  try:
    raw = f.decrypt(data, ttl=int(settings.access_token_ttl_seconds))
  except InvalidToken:
    try:
      issued = f.extract_timestamp(data)
    except InvalidToken:
      raise UnauthorizedError("Invalid token. Please log in again.") from None
    if issued + int(settings.access_token_ttl_seconds) < time.time():
      raise UnauthorizedError("Token expired. Please log in again.") from None
    raise UnauthorizedError("Invalid token. Please log in again.") from None
  try:
    payload = json.loads(raw)
    return TokenClaims(user_id=str(payload["userId"]), email=str(payload["email"]))
  except (ValueError, KeyError, TypeError):
    raise UnauthorizedError("Invalid token. Please log in again.") from None


def bearer_token(authorization: str | None) -> str | None:
  if authorization and authorization.lower().startswith("bearer "):
    return authorization.split(" ", 1)[1].strip() or None
  return None
