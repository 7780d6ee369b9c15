from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select

from taskpulse.db import SessionLocal
from taskpulse.deps import credential_from
from taskpulse.errors import UnauthorizedError
from taskpulse.models import User
from taskpulse.realtime.hub import FanoutHub, task_channel
from taskpulse.security import ACCESS_COOKIE_NAME, decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

AUTH_FAILED_CLOSE_CODE = 4401


async def _authenticate(ws: WebSocket) -> User:
  raw = ws.query_params.get("token") or credential_from(ws.headers.get("authorization"), ws.cookies.get(ACCESS_COOKIE_NAME))
  if not raw:
    raise UnauthorizedError("Authentication required. Please log in.")
  claims = decode_access_token(raw)
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.id == claims.user_id))
    u = res.scalar_one_or_none()
  if not u:
    raise UnauthorizedError("User not found")
  return u


@router.websocket("/ws")
async def realtime_socket(ws: WebSocket) -> None:
  # close codes only reach the client once the handshake is accepted
  await ws.accept()
  try:
    user = await _authenticate(ws)
  except UnauthorizedError as exc:
    logger.info("realtime: rejected connection (%s)", exc.message)
    await ws.close(code=AUTH_FAILED_CLOSE_CODE, reason=exc.message)
    return

  hub: FanoutHub = ws.app.state.fanout
  conn = hub.register(ws, user.id)
  try:
    await ws.send_json({"event": "connection", "data": {"userId": user.id, "connectionId": conn.id}})
    while True:
      msg = await ws.receive_json()
      kind = msg.get("type") if isinstance(msg, dict) else None
      task_id = msg.get("taskId") if isinstance(msg, dict) else None
      if kind not in {"task:join", "task:leave"} or not isinstance(task_id, str) or not task_id:
        await ws.send_json({"event": "error", "data": {"message": "Unsupported message"}})
        continue
      if kind == "task:join":
        hub.join(conn, task_channel(task_id))
        logger.info("realtime: user %s joined %s", user.id, task_channel(task_id))
      else:
        hub.leave(conn, task_channel(task_id))
        logger.info("realtime: user %s left %s", user.id, task_channel(task_id))
      await ws.send_json({"event": kind, "data": {"taskId": task_id}})
  except WebSocketDisconnect:
    pass
  except (ValueError, KeyError):
    # non-JSON text raises ValueError, a binary frame KeyError("text")
    logger.info("realtime: closing connection %s after malformed frame", conn.id)
    await ws.close(code=status.WS_1003_UNSUPPORTED_DATA)
  finally:
    hub.unregister(conn)
