from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt, field_validator, model_validator


class RuntimeConfig(BaseModel):
    log_level: str = "INFO"
    environment: str = "development"


class LoggingConfig(BaseModel):
    logfmt_enabled: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "edgeplex.log"
    console_enabled: bool = True


class ServerConfig(BaseModel):
    name: str = "edgeplex"
    version: str = "0.1.6"


class EdgesConfig(BaseModel):
    server_url: str = "ws://any.browsers.live:3000"
    api_key: str = "datascaler-persist-aipkey"
    edge_ids: List[str] = Field(default_factory=lambda: ["2ef67d1859e83183"])
    connect_timeout_seconds: PositiveFloat = 60.0
    page_probe_timeout_seconds: PositiveFloat = 5.0

    @field_validator("edge_ids")
    @classmethod
    def _strip_edge_ids(cls, value: List[str]) -> List[str]:
        normalized = [edge_id.strip() for edge_id in value if edge_id.strip()]
        if not normalized:
            raise ValueError("edge_ids cannot be empty")
        return list(dict.fromkeys(normalized))


class XAccountConfig(BaseModel):
    edge_id: str | None = None
    email: str | None = None
    password: str | None = None
    username: str | None = None
    reply_text: str = "LFG"
    base_url: str = "https://x.com"
    navigation_timeout_seconds: PositiveInt = 60


class JitterRange(BaseModel):
    min_seconds: float = Field(default=2.0, ge=0)
    max_seconds: float = Field(default=4.0, ge=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "JitterRange":
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")
        return self


class ClusterConfig(BaseModel):
    server_url: str = "wss://any.browsers.live"
    api_key: str = ""
    region: str = "any"
    usernames: List[str] = Field(default_factory=lambda: ["elonmusk", "realdonaldtrump", "solana"])
    concurrency: PositiveInt = 3
    max_tweets: PositiveInt = 100
    max_retries: int = Field(default=3, ge=0)
    retry_delay_seconds: float = Field(default=0.0, ge=0)
    connect_timeout_seconds: PositiveFloat = 60.0
    navigation_timeout_seconds: PositiveInt = 45
    settle_seconds: float = Field(default=5.0, ge=0)
    post_wait_timeout_seconds: PositiveInt = 35
    diagnostic_timeout_seconds: PositiveInt = 10
    screenshot_dir: str = "screenshots"
    success_delay: JitterRange = JitterRange()
    failure_delay: JitterRange = JitterRange()
    cancel_delay: JitterRange = JitterRange(min_seconds=0.5, max_seconds=1.0)


class Settings(BaseModel):
    runtime: RuntimeConfig = RuntimeConfig()
    logging: LoggingConfig = LoggingConfig()
    server: ServerConfig = ServerConfig()
    edges: EdgesConfig = EdgesConfig()
    x: XAccountConfig = XAccountConfig()
    cluster: ClusterConfig = ClusterConfig()

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        return cls.model_validate(data)
