from __future__ import annotations

import json
import logging
from typing import Any

from mcp.types import Tool

from edgeplex.app.artifacts import ConsoleLogBuffer, ScreenshotStore
from edgeplex.app.event_bus import EventBus
from edgeplex.app.page_multiplexer import PageMultiplexer
from edgeplex.app.session_registry import SessionRegistry
from edgeplex.core.edges import EdgeDirectory
from edgeplex.core.errors import format_error
from edgeplex.core.events import ScreenshotStoredEvent
from edgeplex.tools.arg_utils import optional_bool, optional_str, require_tasks
from edgeplex.tools.base import ContentBlock, ToolBinding, ToolFailure, png_block, text_block
from edgeplex.tools.schema_utils import (
    boolean_field,
    single_required_field_object,
    strict_object,
    string_field,
    task_array,
)

WAIT_UNTIL_VALUES = ["load", "domcontentloaded", "networkidle", "commit"]


class BrowserTool:
    def __init__(
        self,
        directory: EdgeDirectory,
        registry: SessionRegistry,
        pages: PageMultiplexer,
        console_logs: ConsoleLogBuffer,
        screenshots: ScreenshotStore,
        event_bus: EventBus,
    ) -> None:
        self._directory = directory
        self._registry = registry
        self._pages = pages
        self._console_logs = console_logs
        self._screenshots = screenshots
        self._event_bus = event_bus
        self._logger = logging.getLogger("edgeplex.tools.browser")

    def bindings(self) -> list[ToolBinding]:
        return [
            ToolBinding(tool=self._open_schema(), handler=self._handle_open),
            ToolBinding(tool=self._console_logs_schema(), handler=self._handle_console_logs),
            ToolBinding(tool=self._screenshot_schema(), handler=self._handle_screenshot),
            ToolBinding(tool=self._navigate_schema(), handler=self._handle_navigate),
        ]

    async def _handle_open(self, payload: dict[str, Any]) -> list[ContentBlock]:
        del payload
        launched: list[str] = []
        try:
            for edge_id in self._directory.identities:
                await self._registry.get_or_create_session(edge_id)
                await self._pages.resolve_page(edge_id)
                launched.append(edge_id)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("failed to open browsers", extra={"error": format_error(exc)})
            raise ToolFailure(f"Failed to open browsers: {format_error(exc)}") from exc
        return [text_block(f"Launched {len(launched)} browser instances with IDs: {json.dumps(launched)}")]

    async def _handle_console_logs(self, payload: dict[str, Any]) -> list[ContentBlock]:
        del payload
        return [text_block(self._console_logs.text())]

    async def _handle_screenshot(self, payload: dict[str, Any]) -> list[ContentBlock]:
        tasks = require_tasks(payload)
        content: list[ContentBlock] = []
        for task in tasks:
            edge_id = optional_str(task.get("edgeId"), error_message="edgeId must be a string")
            name = optional_str(task.get("name"), error_message="name must be a string")
            if not edge_id or not name:
                content.append(text_block("Error: edgeId and name are required for each task"))
                continue
            page_id = optional_str(task.get("pageId"), error_message="pageId must be a string")
            try:
                content.extend(await self._take_screenshot(task, edge_id, name, page_id))
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "screenshot task failed",
                    extra={"edge_id": edge_id, "name": name, "error": format_error(exc)},
                )
                content.append(text_block(f"Failed to take screenshot for {edge_id}: {format_error(exc)}"))
        return content

    async def _take_screenshot(
        self,
        task: dict[str, Any],
        edge_id: str,
        name: str,
        page_id: str | None,
    ) -> list[ContentBlock]:
        selector = optional_str(task.get("selector"), error_message="selector must be a string")
        full_page = optional_bool(task.get("fullPage"), default=False, error_message="fullPage must be boolean")
        page, _ = await self._pages.resolve_page(edge_id, page_id)
        self._logger.info(
            "taking screenshot",
            extra={"edge_id": edge_id, "page_id": page_id, "target": "element" if selector else "page"},
        )
        if selector:
            image = await page.locator(selector).screenshot()
        else:
            image = await page.screenshot(full_page=full_page)
        if not image:
            return [text_block(f"Element not found: {selector}" if selector else "Screenshot failed")]

        self._screenshots.put(name, image)
        await self._event_bus.publish(ScreenshotStoredEvent(name=name, byte_size=len(image)))
        return [
            text_block(f"Screenshot '{name}' taken from {edge_id}{_page_suffix(page_id)}"),
            png_block(image),
        ]

    async def _handle_navigate(self, payload: dict[str, Any]) -> list[ContentBlock]:
        tasks = require_tasks(payload)
        content: list[ContentBlock] = []
        for task in tasks:
            edge_id = optional_str(task.get("edgeId"), error_message="edgeId must be a string")
            url = optional_str(task.get("url"), error_message="url must be a string")
            if not edge_id or not url:
                content.append(text_block("Error: edgeId and url are required for each task"))
                continue
            page_id = optional_str(task.get("pageId"), error_message="pageId must be a string")
            try:
                content.append(await self._navigate(task, edge_id, url, page_id))
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "navigation task failed",
                    extra={"edge_id": edge_id, "url": url, "error": format_error(exc)},
                )
                content.append(
                    text_block(f"Failed to navigate {edge_id}{_page_suffix(page_id)} to {url}: {format_error(exc)}")
                )
        return content

    async def _navigate(self, task: dict[str, Any], edge_id: str, url: str, page_id: str | None) -> ContentBlock:
        wait_until = self._coerce_wait_until(task.get("waitUntil"))
        page, _ = await self._pages.resolve_page(edge_id, page_id)
        goto_kwargs: dict[str, Any] = {}
        if wait_until:
            goto_kwargs["wait_until"] = wait_until
        response = await page.goto(url, **goto_kwargs)
        self._console_logs.append(f"[{edge_id}][navigation] Navigated to: {url}{_page_suffix(page_id)}")
        title = await page.title()
        status = response.status if response is not None else "unknown"
        return text_block(f"Navigated {edge_id}{_page_suffix(page_id)} to: {url}\nPage title: {title}\nStatus: {status}")

    def _coerce_wait_until(self, value: Any) -> str | None:
        wait_until = optional_str(value, error_message="waitUntil must be a string")
        if wait_until is None:
            return None
        normalized = wait_until.lower()
        if normalized not in WAIT_UNTIL_VALUES:
            raise ValueError(f"waitUntil must be one of: {', '.join(WAIT_UNTIL_VALUES)}")
        return normalized

    def _open_schema(self) -> Tool:
        return Tool(
            name="open_browsers",
            description="Open one remote browser per configured edge identity, each with a default tab.",
            inputSchema=strict_object(properties={}, required=[]),
        )

    def _console_logs_schema(self) -> Tool:
        return Tool(
            name="browser_console_logs",
            description="Get browser console logs collected from every open page.",
            inputSchema=single_required_field_object(
                "random_string",
                string_field("Dummy parameter for no-parameter tools"),
            ),
        )

    def _screenshot_schema(self) -> Tool:
        return Tool(
            name="take_screenshot",
            description="Take a screenshot of one or multiple browsers.",
            inputSchema=single_required_field_object(
                "tasks",
                task_array(
                    {
                        "edgeId": string_field("Browser instance ID to take screenshot from"),
                        "name": string_field("Name for the screenshot"),
                        "selector": string_field("CSS selector for element to screenshot (optional)"),
                        "fullPage": boolean_field("Whether to take a full page screenshot (optional)"),
                        "pageId": string_field("Page ID to take screenshot from (optional)"),
                    },
                    ["edgeId", "name"],
                    "Array of screenshot tasks to perform",
                ),
            ),
        )

    def _navigate_schema(self) -> Tool:
        return Tool(
            name="navigate_to_url",
            description="Navigate one or multiple browsers to specific URLs.",
            inputSchema=single_required_field_object(
                "tasks",
                task_array(
                    {
                        "edgeId": string_field("Browser instance ID to navigate"),
                        "url": string_field("URL to navigate to"),
                        "waitUntil": string_field(
                            "Navigation wait condition (optional)",
                            enum=WAIT_UNTIL_VALUES,
                        ),
                        "pageId": string_field("Page ID to navigate (optional)"),
                    },
                    ["edgeId", "url"],
                    "Array of navigation tasks to perform",
                ),
            ),
        )


def _page_suffix(page_id: str | None) -> str:
    return f" (page {page_id})" if page_id else ""
