"""Detached background work with bounded lifetimes.

Click flushes and expired-link deletions must never hold up the response that
triggered them, and must not be cancelled when that request is. They are
submitted here as independent asyncio tasks, each with its own timeout.
Failures are logged and never retried.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

__all__ = ["BackgroundTasks"]


class BackgroundTasks:
    def __init__(self, timeout_seconds: float, logger: logging.Logger):
        self._timeout = timeout_seconds
        self._logger = logger
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(coro, name), name=name)
        # The event loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError:
            self._logger.error(f"Background task {name} timed out after {self._timeout}s")
        except asyncio.CancelledError:
            self._logger.warning(f"Background task {name} cancelled")
            raise
        except Exception as exc:
            self._logger.error(f"Background task {name} failed: {exc}")

    async def drain(self) -> None:
        """Wait for every task submitted so far, including ones they submit."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
