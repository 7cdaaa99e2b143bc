"""Periodic removal of expired session tokens."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging

logger = logging.getLogger(__name__)


class SessionPurgeTask:
    def __init__(self, purge: Callable[[], int], *, interval_seconds: float = 3600.0) -> None:
        self._purge = purge
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="session-purge")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            try:
                self._purge()
            except Exception:
                logger.exception("auth.sessions_purge_failed")
            await asyncio.sleep(self._interval_seconds)


__all__ = ["SessionPurgeTask"]
