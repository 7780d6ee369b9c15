from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from taskpulse.metrics import RuntimeMetrics

logger = logging.getLogger(__name__)


class EventSink(Protocol):
  async def send_json(self, data: Any) -> None: ...


def user_channel(user_id: str) -> str:
  return f"user:{user_id}"


def task_channel(task_id: str) -> str:
  return f"task:{task_id}"


@dataclass(eq=False)
class Connection:
  sink: EventSink
  user_id: str
  id: str = field(default_factory=lambda: str(uuid.uuid4()))
  channels: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class Delivery:
  event: str
  data: Any
  channel: str | None = None  # None = every connection


class FanoutHub:
  """
  Subscription registry plus best-effort delivery of events to live connections.

  Channels are plain string keys ("user:<id>", "task:<id>"). A connection is
  always in its own user channel while registered; unregister removes it from
  every channel. Delivery is at-most-once: a send that fails drops the
  connection and nothing is retried.
  """

  def __init__(self, metrics: RuntimeMetrics | None = None) -> None:
    self.metrics = metrics
    self._connections: set[Connection] = set()
    self._channels: dict[str, set[Connection]] = {}
    self._pending: set[asyncio.Task] = set()

  def register(self, sink: EventSink, user_id: str) -> Connection:
    conn = Connection(sink=sink, user_id=user_id)
    self._connections.add(conn)
    self.join(conn, user_channel(user_id))
    logger.info("realtime: user %s connected (%d live connections)", user_id, len(self._connections))
    return conn

  def unregister(self, conn: Connection) -> None:
    if conn not in self._connections:
      return
    for channel in list(conn.channels):
      self._discard(conn, channel)
    self._connections.discard(conn)
    logger.info("realtime: user %s disconnected (%d live connections)", conn.user_id, len(self._connections))

  def join(self, conn: Connection, channel: str) -> None:
    if conn not in self._connections:
      return
    self._channels.setdefault(channel, set()).add(conn)
    conn.channels.add(channel)

  def leave(self, conn: Connection, channel: str) -> None:
    if channel == user_channel(conn.user_id):
      return
    self._discard(conn, channel)

  def _discard(self, conn: Connection, channel: str) -> None:
    members = self._channels.get(channel)
    if members is not None:
      members.discard(conn)
      if not members:
        del self._channels[channel]
    conn.channels.discard(channel)

  def subscribers(self, channel: str) -> int:
    return len(self._channels.get(channel, ()))

  @property
  def connection_count(self) -> int:
    return len(self._connections)

  async def broadcast(self, event: str, data: Any) -> int:
    return await self._send_all(list(self._connections), event, data)

  async def publish(self, channel: str, event: str, data: Any) -> int:
    return await self._send_all(list(self._channels.get(channel, ())), event, data)

  async def _send_all(self, targets: list[Connection], event: str, data: Any) -> int:
    message = {"event": event, "data": data}
    delivered = 0
    for conn in targets:
      try:
        await conn.sink.send_json(message)
        delivered += 1
      except Exception:
        logger.warning("realtime: dropping connection %s for user %s after failed send of %s", conn.id, conn.user_id, event, exc_info=True)
        self.unregister(conn)
        if self.metrics is not None:
          self.metrics.observe_dropped_connection()
    logger.debug("realtime: %s delivered to %d of %d connections", event, delivered, len(targets))
    if self.metrics is not None:
      self.metrics.observe_event(delivered)
    return delivered

  async def deliver(self, deliveries: Iterable[Delivery]) -> None:
    for d in deliveries:
      if d.channel is None:
        await self.broadcast(d.event, d.data)
      else:
        await self.publish(d.channel, d.event, d.data)

  def dispatch(self, deliveries: list[Delivery]) -> asyncio.Task | None:
    """Fire-and-forget: deliver in order on a detached task so the caller never waits on sockets."""
    if not deliveries:
      return None
    return self._spawn(self.deliver(deliveries))

  def _spawn(self, aw: Awaitable[None]) -> asyncio.Task:
    task = asyncio.ensure_future(aw)
    self._pending.add(task)
    task.add_done_callback(self._finished)
    return task

  def _finished(self, task: asyncio.Task) -> None:
    self._pending.discard(task)
    if not task.cancelled() and task.exception() is not None:
      logger.error("realtime: delivery task failed", exc_info=task.exception())

  async def drain(self) -> None:
    """Wait for in-flight deliveries (shutdown and tests)."""
    while self._pending:
      await asyncio.gather(*list(self._pending), return_exceptions=True)
