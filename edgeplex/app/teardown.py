from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from edgeplex.core.errors import format_error

ShutdownStep = Callable[[], Awaitable[None]]


class TeardownCoordinator:
    """Runs the shutdown steps once, whatever triggered it.

    Concurrent callers share the same in-flight shutdown. A failing step is
    logged and the remaining steps still run.
    """

    def __init__(self, steps: list[tuple[str, ShutdownStep]]) -> None:
        self._steps = list(steps)
        self._task: asyncio.Task[None] | None = None
        self.reason: str | None = None
        self._logger = logging.getLogger("edgeplex.teardown")

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def finished(self) -> bool:
        return self._task is not None and self._task.done()

    async def shutdown(self, reason: str) -> None:
        if self._task is None:
            self.reason = reason
            self._logger.info("shutting down", extra={"reason": reason})
            self._task = asyncio.create_task(self._run_steps())
        else:
            self._logger.debug("shutdown already in progress", extra={"reason": reason})
        await asyncio.shield(self._task)

    async def _run_steps(self) -> None:
        for name, step in self._steps:
            try:
                await step()
                self._logger.info("shutdown step finished", extra={"step": name})
            except Exception as exc:  # noqa: BLE001
                self._logger.error("shutdown step failed", extra={"step": name, "error": format_error(exc)})
        self._logger.info("shutdown complete", extra={"reason": self.reason})


def server_steps(*, registry, transport, event_bus, factory) -> list[tuple[str, ShutdownStep]]:
    return [
        ("close sessions", registry.close_all),
        ("release transport", transport.close),
        ("stop registry", registry.stop),
        ("stop event bus", event_bus.stop),
        ("stop playwright", factory.stop),
    ]
