from __future__ import annotations

import asyncio
from contextlib import suppress
import logging
from typing import Any, Sequence
from urllib.parse import quote, unquote

from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from mcp.types import (
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    CallToolRequest,
    ErrorData,
    Resource,
    ServerResult,
    Tool,
)
from pydantic import AnyUrl

from edgeplex.app.artifacts import (
    CONSOLE_LOGS_URI,
    ConsoleLogBuffer,
    ScreenshotStore,
    screenshot_name_from_uri,
    screenshot_uri,
)
from edgeplex.app.event_bus import EventBus, EventSubscription
from edgeplex.core.errors import ResourceNotFoundError, format_error
from edgeplex.core.events import ConsoleLogEvent, ScreenshotStoredEvent
from edgeplex.tools.base import ContentBlock, ToolBinding, ToolFailure


class EdgeplexMCPServer:
    """Exposes tool bindings and console/screenshot resources over MCP stdio."""

    def __init__(
        self,
        *,
        name: str,
        version: str,
        bindings: Sequence[ToolBinding],
        console_logs: ConsoleLogBuffer,
        screenshots: ScreenshotStore,
        event_bus: EventBus,
    ) -> None:
        self._name = name
        self._version = version
        self._bindings = {binding.name: binding for binding in bindings}
        self._console_logs = console_logs
        self._screenshots = screenshots
        self._event_bus = event_bus
        self._server: Server = Server(name)
        self._session: Any = None
        self._subscription: EventSubscription | None = None
        self._forward_task: asyncio.Task[None] | None = None
        self._transport_task: asyncio.Task[None] | None = None
        self._logger = logging.getLogger("edgeplex.mcp.server")
        self._register_handlers()

    @property
    def protocol_server(self) -> Server:
        return self._server

    @property
    def tool_names(self) -> list[str]:
        return list(self._bindings)

    def list_tools(self) -> list[Tool]:
        return [binding.tool for binding in self._bindings.values()]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[ContentBlock]:
        binding = self._bindings.get(name)
        if binding is None:
            raise McpError(ErrorData(code=METHOD_NOT_FOUND, message=f"Unknown tool: {name}"))
        self._logger.info("calling tool", extra={"tool": name})
        try:
            return await binding.handler(arguments)
        except ToolFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.error("tool call failed", extra={"tool": name, "error": format_error(exc)})
            raise ToolFailure(f"Error: {format_error(exc)}") from exc

    def list_resources(self) -> list[Resource]:
        resources = [Resource(uri=CONSOLE_LOGS_URI, name="Browser console logs", mimeType="text/plain")]
        for name in self._screenshots.names():
            resources.append(
                Resource(uri=screenshot_uri(quote(name, safe="")), name=f"Screenshot: {name}", mimeType="image/png")
            )
        return resources

    def read_resource_contents(self, uri: str) -> list[ReadResourceContents]:
        if uri == CONSOLE_LOGS_URI:
            return [ReadResourceContents(content=self._console_logs.text(), mime_type="text/plain")]
        name = screenshot_name_from_uri(uri)
        if name is None:
            raise ResourceNotFoundError(uri)
        image = self._screenshots.get(unquote(name))
        return [ReadResourceContents(content=image, mime_type="image/png")]

    async def start_forwarding(self) -> None:
        if self._forward_task and not self._forward_task.done():
            return
        self._subscription = self._event_bus.subscribe(ConsoleLogEvent, ScreenshotStoredEvent)
        self._forward_task = asyncio.create_task(self._forward_notifications(self._subscription))

    def start(self) -> asyncio.Task[None]:
        if self._transport_task is None or self._transport_task.done():
            self._transport_task = asyncio.create_task(self.run())
        return self._transport_task

    async def run(self) -> None:
        await self.start_forwarding()
        self._logger.info("mcp server listening on stdio", extra={"server": self._name})
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(read_stream, write_stream, self._initialization_options())

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        if self._forward_task is not None:
            with suppress(asyncio.CancelledError):
                await self._forward_task
            self._forward_task = None
        task = self._transport_task
        self._transport_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
        self._session = None

    def _initialization_options(self) -> InitializationOptions:
        return InitializationOptions(
            server_name=self._name,
            server_version=self._version,
            capabilities=self._server.get_capabilities(
                notification_options=NotificationOptions(resources_changed=True),
                experimental_capabilities={},
            ),
        )

    def _register_handlers(self) -> None:
        server = self._server

        @server.list_tools()
        async def _list_tools() -> list[Tool]:
            self._remember_session()
            return self.list_tools()

        @server.call_tool(validate_input=False)
        async def _call_tool(name: str, arguments: dict[str, Any] | None) -> list[ContentBlock]:
            self._remember_session()
            return await self.call_tool(name, arguments or {})

        # unknown tools are a protocol error, not an isError tool result
        dispatch_call = server.request_handlers[CallToolRequest]

        async def _checked_call_tool(request: CallToolRequest) -> ServerResult:
            if request.params.name not in self._bindings:
                raise McpError(ErrorData(code=METHOD_NOT_FOUND, message=f"Unknown tool: {request.params.name}"))
            return await dispatch_call(request)

        server.request_handlers[CallToolRequest] = _checked_call_tool

        @server.list_resources()
        async def _list_resources() -> list[Resource]:
            self._remember_session()
            return self.list_resources()

        @server.read_resource()
        async def _read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
            self._remember_session()
            try:
                return self.read_resource_contents(str(uri))
            except ResourceNotFoundError as exc:
                raise McpError(ErrorData(code=INVALID_REQUEST, message=str(exc))) from exc

    def _remember_session(self) -> None:
        try:
            self._session = self._server.request_context.session
        except LookupError:
            return

    async def _forward_notifications(self, subscription: EventSubscription) -> None:
        async for event in subscription:
            session = self._session
            if session is None:
                continue
            try:
                if isinstance(event, ConsoleLogEvent):
                    await session.send_resource_updated(AnyUrl(CONSOLE_LOGS_URI))
                elif isinstance(event, ScreenshotStoredEvent):
                    await session.send_resource_list_changed()
            except Exception as exc:  # noqa: BLE001
                self._logger.debug("resource notification failed", extra={"error": format_error(exc)})
