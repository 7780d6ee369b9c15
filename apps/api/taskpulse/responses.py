from __future__ import annotations

from typing import Any

from pydantic import BaseModel


def _plain(value: Any) -> Any:
  if isinstance(value, BaseModel):
    return value.model_dump(mode="json")
  if isinstance(value, list):
    return [_plain(v) for v in value]
  return value


def ok(data: Any = None, *, message: str | None = None, **extra: Any) -> dict[str, Any]:
  """Success envelope: {"success": true, "data"?, "message"?, ...extra}."""
  body: dict[str, Any] = {"success": True}
  if data is not None:
    body["data"] = _plain(data)
  if message:
    body["message"] = message
  body.update(extra)
  return body


def error_body(message: str, details: Any = None) -> dict[str, Any]:
  body: dict[str, Any] = {"success": False, "error": message}
  if details is not None:
    body["details"] = details
  return body
