from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
import logging
from pathlib import Path
import signal
import sys
from typing import Any

from edgeplex.adapters.container import AppContainer
from edgeplex.adapters.mcp.server import EdgeplexMCPServer
from edgeplex.app.teardown import TeardownCoordinator, server_steps
from edgeplex.core.errors import format_error
from edgeplex.tools.factory import build_tools


@dataclass
class StopRequest:
    event: asyncio.Event = field(default_factory=asyncio.Event)
    reason: str | None = None
    exit_code: int = 0

    def request(self, reason: str, exit_code: int = 0) -> None:
        if self.event.is_set():
            return
        self.reason = reason
        self.exit_code = exit_code
        self.event.set()


async def run(config_path: Path | None = None) -> int:
    AppContainer.configure(config_path)
    logger = AppContainer.get_logger()
    settings = AppContainer.get_settings()
    event_bus = AppContainer.get_event_bus()
    registry = AppContainer.get_registry()
    directory = AppContainer.get_directory()

    bindings = build_tools(
        settings,
        directory=directory,
        registry=registry,
        pages=AppContainer.get_pages(),
        fanout=AppContainer.get_fanout(),
        console_logs=AppContainer.get_console_logs(),
        screenshots=AppContainer.get_screenshots(),
        event_bus=event_bus,
    )
    server = EdgeplexMCPServer(
        name=settings.server.name,
        version=settings.server.version,
        bindings=bindings,
        console_logs=AppContainer.get_console_logs(),
        screenshots=AppContainer.get_screenshots(),
        event_bus=event_bus,
    )
    teardown = TeardownCoordinator(
        server_steps(
            registry=registry,
            transport=server,
            event_bus=event_bus,
            factory=AppContainer.get_browser_factory(),
        )
    )
    logger.info(
        "booting edgeplex",
        extra={"component": "daemon", "tools": server.tool_names, "edge_ids": directory.identities},
    )

    async with _graceful_shutdown(logger) as stop:
        await registry.start()
        server_task = server.start()
        server_task.add_done_callback(lambda task: _on_transport_done(task, stop, logger))
        await stop.event.wait()
        await teardown.shutdown(stop.reason or "stop requested")
    logger.info("daemon stopped", extra={"component": "daemon", "exit_code": stop.exit_code})
    return stop.exit_code


def _on_transport_done(task: asyncio.Task[Any], stop: StopRequest, logger: logging.Logger) -> None:
    if task.cancelled():
        stop.request("transport cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error("transport failed", extra={"component": "daemon", "error": format_error(error)})
        stop.request("uncaught fault", exit_code=1)
        return
    stop.request("transport closed")


@asynccontextmanager
async def _graceful_shutdown(logger: logging.Logger):
    stop = StopRequest()
    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()

    def _on_signal(sig: int) -> None:
        logger.info("received stop signal", extra={"signal": signal.Signals(sig).name})
        stop.request(f"signal {signal.Signals(sig).name}")

    def _on_loop_exception(_: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception")
        logger.error(
            "unhandled async failure",
            extra={"component": "daemon", "error": format_error(error) if error else context.get("message")},
        )
        stop.request("unhandled async failure", exit_code=1)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _on_signal, sig)
    loop.set_exception_handler(_on_loop_exception)

    try:
        yield stop
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(Exception):
                loop.remove_signal_handler(sig)
        loop.set_exception_handler(previous_handler)


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
