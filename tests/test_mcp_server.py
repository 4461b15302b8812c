from __future__ import annotations

from typing import Any

from mcp.shared.exceptions import McpError
from mcp.types import METHOD_NOT_FOUND, CallToolRequest, CallToolRequestParams, Tool
import pytest

from edgeplex.adapters.mcp.server import EdgeplexMCPServer
from edgeplex.app.artifacts import ConsoleLogBuffer, ScreenshotStore
from edgeplex.app.event_bus import EventBus
from edgeplex.core.errors import ResourceNotFoundError
from edgeplex.core.events import ConsoleLogEvent, ScreenshotStoredEvent
from edgeplex.tools.base import ToolBinding, ToolFailure, text_block


def _binding(name: str, handler) -> ToolBinding:
    return ToolBinding(tool=Tool(name=name, description=name, inputSchema={"type": "object"}), handler=handler)


async def _echo(payload: dict[str, Any]):
    return [text_block(f"echo {payload.get('value')}")]


async def _broken(payload: dict[str, Any]):
    del payload
    raise ValueError("tasks array is required")


async def _failing(payload: dict[str, Any]):
    del payload
    raise ToolFailure("Failed to open browsers: nope")


def _server(screenshots: ScreenshotStore | None = None, console_logs: ConsoleLogBuffer | None = None):
    return EdgeplexMCPServer(
        name="edgeplex",
        version="0.1.6",
        bindings=[_binding("echo", _echo), _binding("broken", _broken), _binding("failing", _failing)],
        console_logs=console_logs if console_logs is not None else ConsoleLogBuffer(),
        screenshots=screenshots if screenshots is not None else ScreenshotStore(),
        event_bus=EventBus(),
    )


def test_lists_tools_in_registration_order() -> None:
    server = _server()

    assert server.tool_names == ["echo", "broken", "failing"]
    assert [tool.name for tool in server.list_tools()] == ["echo", "broken", "failing"]


@pytest.mark.asyncio
async def test_call_tool_dispatches_by_name() -> None:
    result = await _server().call_tool("echo", {"value": 3})

    assert result[0].text == "echo 3"


@pytest.mark.asyncio
async def test_unknown_tool_is_method_not_found() -> None:
    with pytest.raises(McpError) as excinfo:
        await _server().call_tool("missing", {})

    assert excinfo.value.error.code == METHOD_NOT_FOUND
    assert excinfo.value.error.message == "Unknown tool: missing"


@pytest.mark.asyncio
async def test_handler_errors_are_wrapped() -> None:
    server = _server()

    with pytest.raises(ToolFailure, match="^Error: tasks array is required$"):
        await server.call_tool("broken", {})
    with pytest.raises(ToolFailure, match="^Failed to open browsers: nope$"):
        await server.call_tool("failing", {})


def test_resources_list_console_and_screenshots() -> None:
    screenshots = ScreenshotStore()
    screenshots.put("home", b"\x89PNG")
    screenshots.put("after login", b"\x89PNG2")

    resources = _server(screenshots=screenshots).list_resources()

    assert [str(resource.uri) for resource in resources] == [
        "console://logs",
        "screenshot://home",
        "screenshot://after%20login",
    ]
    assert [resource.name for resource in resources] == [
        "Browser console logs",
        "Screenshot: home",
        "Screenshot: after login",
    ]
    assert [resource.mimeType for resource in resources] == ["text/plain", "image/png", "image/png"]


def test_read_console_and_screenshot_resources() -> None:
    console_logs = ConsoleLogBuffer()
    console_logs.append("[edge-a][log] ready")
    screenshots = ScreenshotStore()
    screenshots.put("after login", b"\x89PNG")
    server = _server(screenshots=screenshots, console_logs=console_logs)

    console = server.read_resource_contents("console://logs")
    image = server.read_resource_contents("screenshot://after%20login")

    assert console[0].content == "[edge-a][log] ready"
    assert console[0].mime_type == "text/plain"
    assert image[0].content == b"\x89PNG"
    assert image[0].mime_type == "image/png"


def test_unknown_resources_raise_not_found() -> None:
    server = _server()

    with pytest.raises(ResourceNotFoundError, match="Resource not found: screenshot://nope"):
        server.read_resource_contents("screenshot://nope")
    with pytest.raises(ResourceNotFoundError, match="Resource not found: file:///etc/hosts"):
        server.read_resource_contents("file:///etc/hosts")


@pytest.mark.asyncio
async def test_close_without_start_is_safe() -> None:
    server = _server()

    await server.start_forwarding()
    await server.close()
    await server.close()


def _call_request(name: str, arguments: dict[str, Any] | None = None) -> CallToolRequest:
    return CallToolRequest(method="tools/call", params=CallToolRequestParams(name=name, arguments=arguments or {}))


@pytest.mark.asyncio
async def test_protocol_call_with_unknown_tool_raises_method_not_found() -> None:
    handler = _server().protocol_server.request_handlers[CallToolRequest]

    with pytest.raises(McpError) as excinfo:
        await handler(_call_request("nope"))

    assert excinfo.value.error.code == METHOD_NOT_FOUND
    assert excinfo.value.error.message == "Unknown tool: nope"


@pytest.mark.asyncio
async def test_protocol_call_returns_content_or_tool_error() -> None:
    handler = _server().protocol_server.request_handlers[CallToolRequest]

    ok = await handler(_call_request("echo", {"value": 7}))
    failed = await handler(_call_request("broken"))

    assert ok.root.isError is False
    assert ok.root.content[0].text == "echo 7"
    assert failed.root.isError is True
    assert failed.root.content[0].text == "Error: tasks array is required"


class _FakeSession:
    def __init__(self) -> None:
        self.updated: list[str] = []
        self.list_changed = 0

    async def send_resource_updated(self, uri) -> None:
        self.updated.append(str(uri))

    async def send_resource_list_changed(self) -> None:
        self.list_changed += 1


@pytest.mark.asyncio
async def test_bus_events_become_resource_notifications() -> None:
    event_bus = EventBus()
    server = EdgeplexMCPServer(
        name="edgeplex",
        version="0.1.6",
        bindings=[],
        console_logs=ConsoleLogBuffer(),
        screenshots=ScreenshotStore(),
        event_bus=event_bus,
    )
    session = _FakeSession()
    server._session = session

    await server.start_forwarding()
    await event_bus.publish(ConsoleLogEvent(page_key="edge-a", level="log", text="hi", line="[edge-a][log] hi"))
    await event_bus.publish(ScreenshotStoredEvent(name="home", byte_size=4))
    await server.close()

    assert session.updated == ["console://logs"]
    assert session.list_changed == 1
