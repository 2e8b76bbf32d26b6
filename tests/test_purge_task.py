"""
tests/test_purge_task.py -- Tests for the background reset-code purge task.

Covers:
  - an unexpected purge failure is logged and the loop keeps running
  - stop_purge_task cancels the task and waits for it to finish
"""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace

from api.main import _purge_loop, stop_purge_task


class FlakyResetService:
    """Fails the first purge, then succeeds."""

    def __init__(self) -> None:
        self.calls = 0

    def purge_expired_codes(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("disk I/O error")
        return 0


async def _run_until(service: FlakyResetService, calls: int) -> asyncio.Task:
    app = SimpleNamespace(state=SimpleNamespace(reset_service=service))
    task = asyncio.create_task(_purge_loop(app, 0))

    async def wait_for_calls() -> None:
        while service.calls < calls:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(wait_for_calls(), timeout=5)
    assert not task.done()
    await stop_purge_task(task)
    return task


def test_purge_failure_is_logged_and_loop_continues(caplog):
    """A RuntimeError from one purge does not end the task."""
    service = FlakyResetService()
    with caplog.at_level(logging.ERROR, logger="folioauth.api"):
        asyncio.run(_run_until(service, 3))
    assert service.calls >= 3
    assert "Reset code purge failed" in caplog.text


def test_stop_purge_task_waits_for_cancellation():
    """After stop_purge_task returns, the task is finished and cancelled."""
    task = asyncio.run(_run_until(FlakyResetService(), 2))
    assert task.done()
    assert task.cancelled()
