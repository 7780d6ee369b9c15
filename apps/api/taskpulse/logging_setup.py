from __future__ import annotations

import logging
import sys


class _ThirdPartyNoiseFilter(logging.Filter):
  """Let taskpulse logs through at the configured level; everything else only from WARNING."""

  def filter(self, record: logging.LogRecord) -> bool:
    if record.name.startswith("taskpulse"):
      return True
    return record.levelno >= logging.WARNING


def setup_logging(level: str | int = logging.INFO) -> None:
  """
  Configure the root logger with a single stderr handler.

  Call once at startup. Safe to call again: existing handlers are replaced.
  """
  if isinstance(level, str):
    level = logging.getLevelName(level.strip().upper())
    if not isinstance(level, int):
      level = logging.INFO

  root = logging.getLogger()
  root.setLevel(level)
  for h in list(root.handlers):
    root.removeHandler(h)

  fmt = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
  )
  handler = logging.StreamHandler(sys.stderr)
  handler.setLevel(level)
  handler.setFormatter(fmt)
  handler.addFilter(_ThirdPartyNoiseFilter())
  root.addHandler(handler)

  logging.captureWarnings(True)
