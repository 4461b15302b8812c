from __future__ import annotations

import json
import logging
from typing import Any

from mcp.types import Tool

from edgeplex.adapters.config.schema import XAccountConfig
from edgeplex.app.fanout import FanoutScheduler
from edgeplex.app.page_multiplexer import PageMultiplexer
from edgeplex.app.session_registry import SessionRegistry
from edgeplex.automation.x import latest_post_text, send_post
from edgeplex.core.edges import split_names
from edgeplex.core.errors import ConfigurationMissingError, format_error
from edgeplex.tools.arg_utils import require_non_empty_str
from edgeplex.tools.base import ContentBlock, ToolBinding, ToolFailure, text_block
from edgeplex.tools.schema_utils import single_required_field_object, string_field

SEND_POST_WORK_ITEM = "send_tweet"


class XTool:
    def __init__(
        self,
        account: XAccountConfig,
        fanout: FanoutScheduler,
        registry: SessionRegistry,
        pages: PageMultiplexer,
    ) -> None:
        self._account = account
        self._fanout = fanout
        self._registry = registry
        self._pages = pages
        self._logger = logging.getLogger("edgeplex.tools.x")

    def bindings(self) -> list[ToolBinding]:
        return [
            ToolBinding(tool=self._latest_posts_schema(), handler=self._handle_latest_posts),
            ToolBinding(tool=self._send_post_schema(), handler=self._handle_send_post),
        ]

    async def _handle_latest_posts(self, payload: dict[str, Any]) -> list[ContentBlock]:
        names = split_names(require_non_empty_str(payload, "kolNames"))
        if not names:
            raise ValueError("kolNames must contain at least one username")

        async def _routine(page: Any, username: str) -> str | None:
            return await latest_post_text(
                page,
                username,
                base_url=self._account.base_url,
                timeout_seconds=self._account.navigation_timeout_seconds,
            )

        try:
            report = await self._fanout.run_batch(names, _routine)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("latest posts batch failed", extra={"error": format_error(exc)})
            raise ToolFailure(f"Failed to get kol tweets: {format_error(exc)}") from exc
        return [text_block(json.dumps(report.to_payload(), indent=2, ensure_ascii=False))]

    async def _handle_send_post(self, payload: dict[str, Any]) -> list[ContentBlock]:
        text = require_non_empty_str(payload, "tweet")
        try:
            edge_id = _require_setting(self._account.edge_id, "X_EDGEID")
            _require_setting(self._account.email, "X_EMAIL")
            _require_setting(self._account.password, "X_PASSWORD")
            page = await self._pages.get_or_create_page(edge_id, SEND_POST_WORK_ITEM)
            await send_post(page, self._account, text, timeout_seconds=self._account.navigation_timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("send post failed", extra={"error": format_error(exc)})
            raise ToolFailure(f"Failed to send tweet: {format_error(exc)}") from exc
        finally:
            await self._pages.cleanup_pages([SEND_POST_WORK_ITEM])
            await self._registry.close_all()
        return [text_block(f"Sending tweet: {text}")]

    def _latest_posts_schema(self) -> Tool:
        return Tool(
            name="get_kol_tweets",
            description="Get kol latest tweets",
            inputSchema=single_required_field_object(
                "kolNames",
                string_field("KOL twitter username list, split by comma"),
            ),
        )

    def _send_post_schema(self) -> Tool:
        return Tool(
            name="send_tweet",
            description="Send a tweet",
            inputSchema=single_required_field_object("tweet", string_field("The tweet content")),
        )


def _require_setting(value: str | None, name: str) -> str:
    if not value:
        raise ConfigurationMissingError(name)
    return value
