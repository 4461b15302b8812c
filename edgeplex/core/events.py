from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel, Field


class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    event_type: str


class SessionDisconnectedEvent(BaseEvent):
    event_type: str = "session_disconnected"
    edge_id: str
    session_id: str


class ConsoleLogEvent(BaseEvent):
    event_type: str = "console_log"
    page_key: str
    level: str
    text: str
    line: str


class ScreenshotStoredEvent(BaseEvent):
    event_type: str = "screenshot_stored"
    name: str
    byte_size: int
