from __future__ import annotations

from typing import Any


class AppError(Exception):
  """Domain failure carrying the HTTP status it maps to at the API boundary."""

  status_code = 500

  def __init__(self, message: str, *, details: Any = None, headers: dict[str, str] | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.details = details
    self.headers = headers


class BadRequestError(AppError):
  status_code = 400


class UnauthorizedError(AppError):
  status_code = 401


class ForbiddenError(AppError):
  status_code = 403


class NotFoundError(AppError):
  status_code = 404


class ConflictError(AppError):
  status_code = 409


class TooManyRequestsError(AppError):
  status_code = 429

