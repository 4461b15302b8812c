from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from edgeplex.adapters.browser.remote import RemoteBrowserFactory, edge_url_builder
from edgeplex.adapters.config.loader import load_settings
from edgeplex.adapters.config.schema import Settings
from edgeplex.adapters.logging.setup import configure_logging
from edgeplex.app.artifacts import ConsoleLogBuffer, ScreenshotStore
from edgeplex.app.event_bus import EventBus
from edgeplex.app.fanout import FanoutScheduler
from edgeplex.app.page_multiplexer import PageMultiplexer
from edgeplex.app.session_registry import SessionRegistry
from edgeplex.core.edges import EdgeDirectory


class AppContainer:
    _settings: Optional[Settings] = None
    _logger: Optional[logging.Logger] = None
    _event_bus: Optional[EventBus] = None
    _console_logs: Optional[ConsoleLogBuffer] = None
    _screenshots: Optional[ScreenshotStore] = None
    _directory: Optional[EdgeDirectory] = None
    _factory: Optional[RemoteBrowserFactory] = None
    _registry: Optional[SessionRegistry] = None
    _pages: Optional[PageMultiplexer] = None
    _fanout: Optional[FanoutScheduler] = None

    @classmethod
    def configure(cls, config_path: Path | None = None) -> None:
        cls._settings = load_settings(config_path)
        cls._settings.logging.log_level = cls._settings.runtime.log_level
        cls._logger = configure_logging(cls._settings.logging)
        edges = cls._settings.edges
        cls._event_bus = EventBus()
        cls._console_logs = ConsoleLogBuffer()
        cls._screenshots = ScreenshotStore()
        cls._directory = EdgeDirectory(edges.edge_ids)
        cls._factory = RemoteBrowserFactory(
            edge_url_builder(edges.server_url, edges.api_key),
            connect_timeout_seconds=edges.connect_timeout_seconds,
        )
        cls._registry = SessionRegistry(cls._factory, cls._event_bus)
        cls._pages = PageMultiplexer(
            cls._registry,
            cls._console_logs,
            cls._event_bus,
            probe_timeout_seconds=edges.page_probe_timeout_seconds,
        )
        cls._fanout = FanoutScheduler(cls._registry, cls._pages, cls._directory)

    @classmethod
    def get_settings(cls) -> Settings:
        if cls._settings is None:
            raise RuntimeError("container not configured")
        return cls._settings

    @classmethod
    def get_logger(cls) -> logging.Logger:
        if cls._logger is None:
            raise RuntimeError("container not configured")
        return cls._logger

    @classmethod
    def get_event_bus(cls) -> EventBus:
        if cls._event_bus is None:
            raise RuntimeError("container not configured")
        return cls._event_bus

    @classmethod
    def get_console_logs(cls) -> ConsoleLogBuffer:
        if cls._console_logs is None:
            raise RuntimeError("container not configured")
        return cls._console_logs

    @classmethod
    def get_screenshots(cls) -> ScreenshotStore:
        if cls._screenshots is None:
            raise RuntimeError("container not configured")
        return cls._screenshots

    @classmethod
    def get_directory(cls) -> EdgeDirectory:
        if cls._directory is None:
            raise RuntimeError("container not configured")
        return cls._directory

    @classmethod
    def get_browser_factory(cls) -> RemoteBrowserFactory:
        if cls._factory is None:
            raise RuntimeError("container not configured")
        return cls._factory

    @classmethod
    def get_registry(cls) -> SessionRegistry:
        if cls._registry is None:
            raise RuntimeError("container not configured")
        return cls._registry

    @classmethod
    def get_pages(cls) -> PageMultiplexer:
        if cls._pages is None:
            raise RuntimeError("container not configured")
        return cls._pages

    @classmethod
    def get_fanout(cls) -> FanoutScheduler:
        if cls._fanout is None:
            raise RuntimeError("container not configured")
        return cls._fanout
