from __future__ import annotations

import logging
from time import monotonic

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from taskpulse.config import settings
from taskpulse.errors import AppError
from taskpulse.responses import error_body
from taskpulse.logging_setup import setup_logging
from taskpulse.metrics import runtime_metrics
from taskpulse.realtime.hub import FanoutHub
from taskpulse.routers.auth import router as auth_router
from taskpulse.routers.notifications import router as notifications_router
from taskpulse.routers.realtime import router as realtime_router
from taskpulse.routers.tasks import router as tasks_router

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
  "X-Content-Type-Options": "nosniff",
  "X-Frame-Options": "DENY",
  "Referrer-Policy": "strict-origin-when-cross-origin",
  "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

app = FastAPI(
  title="TaskPulse API",
  version=settings.app_version,
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)
app.state.fanout = FanoutHub(metrics=runtime_metrics)


def _validation_details(exc: RequestValidationError) -> list[str]:
  out: list[str] = []
  for err in exc.errors():
    loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    msg = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
    out.append(f"{loc}: {msg}" if loc else msg)
  return out


@app.exception_handler(AppError)
async def _app_error_handler(_: Request, exc: AppError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
  return JSONResponse(status_code=400, content=error_body("Validation error", _validation_details(exc)))


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
  message = exc.detail if isinstance(exc.detail, str) else "Request failed"
  return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=getattr(exc, "headers", None))


@app.exception_handler(IntegrityError)
async def _integrity_error_handler(_: Request, exc: IntegrityError) -> JSONResponse:
  logger.warning("integrity error: %s", exc.orig)
  return JSONResponse(status_code=409, content=error_body("Duplicate entry. This record already exists."))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.exception("unhandled error on %s %s", request.method, request.url.path)
  return JSONResponse(status_code=500, content=error_body("Internal server error"))


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(tasks_router, prefix=settings.api_prefix)
app.include_router(notifications_router, prefix=settings.api_prefix)
app.include_router(realtime_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  try:
    response = await call_next(request)
  except Exception:
    # rendered as 500 by the catch-all handler further out
    runtime_metrics.observe_request(500, (monotonic() - start) * 1000.0)
    raise
  runtime_metrics.observe_request(response.status_code, (monotonic() - start) * 1000.0)
  for name, value in SECURITY_HEADERS.items():
    response.headers.setdefault(name, value)
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True, **runtime_metrics.snapshot(), "realtimeConnections": app.state.fanout.connection_count}


@app.on_event("startup")
async def _startup() -> None:
  setup_logging(settings.log_level)
  if settings.is_test_database():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  logger.info("TaskPulse API %s starting (prefix=%s)", settings.app_version, settings.api_prefix)


@app.on_event("shutdown")
async def _shutdown() -> None:
  await app.state.fanout.drain()
