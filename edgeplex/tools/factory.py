from __future__ import annotations

from edgeplex.adapters.config.schema import Settings
from edgeplex.app.artifacts import ConsoleLogBuffer, ScreenshotStore
from edgeplex.app.event_bus import EventBus
from edgeplex.app.fanout import FanoutScheduler
from edgeplex.app.page_multiplexer import PageMultiplexer
from edgeplex.app.session_registry import SessionRegistry
from edgeplex.core.edges import EdgeDirectory
from edgeplex.tools.base import ToolBinding
from edgeplex.tools.browser import BrowserTool
from edgeplex.tools.x import XTool


def build_tools(
    settings: Settings,
    *,
    directory: EdgeDirectory,
    registry: SessionRegistry,
    pages: PageMultiplexer,
    fanout: FanoutScheduler,
    console_logs: ConsoleLogBuffer,
    screenshots: ScreenshotStore,
    event_bus: EventBus,
) -> list[ToolBinding]:
    tools: list[ToolBinding] = []
    browser_tool = BrowserTool(
        directory=directory,
        registry=registry,
        pages=pages,
        console_logs=console_logs,
        screenshots=screenshots,
        event_bus=event_bus,
    )
    x_tool = XTool(account=settings.x, fanout=fanout, registry=registry, pages=pages)
    tools.extend(browser_tool.bindings())
    tools.extend(x_tool.bindings())
    return tools
