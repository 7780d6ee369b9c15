from __future__ import annotations

import logging
import warnings

import pytest

from taskpulse.logging_setup import setup_logging


@pytest.fixture
def _restore_root_logger():
  root = logging.getLogger()
  handlers, level = list(root.handlers), root.level
  yield
  logging.captureWarnings(False)
  for h in list(root.handlers):
    root.removeHandler(h)
  for h in handlers:
    root.addHandler(h)
  root.setLevel(level)


@pytest.mark.anyio
async def test_captured_warnings_and_noise_filter(capsys: pytest.CaptureFixture[str], _restore_root_logger) -> None:
  setup_logging("INFO")

  warnings.warn("disk nearly full", UserWarning)
  logging.getLogger("taskpulse.tasks").info("task t1 created")
  logging.getLogger("sqlalchemy.engine").info("SELECT 1")
  logging.getLogger("uvicorn.error").warning("worker restarted")

  err = capsys.readouterr().err
  assert "disk nearly full" in err
  assert "task t1 created" in err
  assert "SELECT 1" not in err
  assert "worker restarted" in err
