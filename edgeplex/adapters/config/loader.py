from __future__ import annotations

from pathlib import Path
import os
import tomllib
from typing import Any, Mapping

from .schema import Settings

DEFAULT_CONFIG_PATH = Path("config.toml")

_LIST_VARIABLES = {
    "EDGE_IDS": ("edges", "edge_ids"),
    "USERNAMES": ("cluster", "usernames"),
}
_STRING_VARIABLES = {
    "X_EDGEID": ("x", "edge_id"),
    "X_EMAIL": ("x", "email"),
    "X_PASSWORD": ("x", "password"),
    "X_USERNAME": ("x", "username"),
    "REPLY_TEXT": ("x", "reply_text"),
    "CLUSTER_API_KEY": ("cluster", "api_key"),
}
_INT_VARIABLES = {
    "CONCURRENCY": ("cluster", "concurrency"),
    "MAX_TWEETS": ("cluster", "max_tweets"),
}


def load_settings(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    resolved = path or Path(env.get("EDGEPLEX_CONFIG", DEFAULT_CONFIG_PATH))
    data: dict[str, Any] = {}
    if resolved.exists():
        with resolved.open("rb") as fp:
            data = tomllib.load(fp)
    return Settings.from_dict(apply_environment(data, env))


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    merged = {section: dict(values) if isinstance(values, dict) else values for section, values in data.items()}
    for variable, (section, field) in _LIST_VARIABLES.items():
        raw = environ.get(variable)
        if not raw:
            continue
        values = [item.strip() for item in raw.split(",") if item.strip()]
        if values:
            merged.setdefault(section, {})[field] = values
    for variable, (section, field) in _STRING_VARIABLES.items():
        raw = environ.get(variable)
        if raw:
            merged.setdefault(section, {})[field] = raw
    for variable, (section, field) in _INT_VARIABLES.items():
        parsed = _parse_positive_int(environ.get(variable))
        if parsed is not None:
            merged.setdefault(section, {})[field] = parsed
    return merged


def _parse_positive_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    if value < 1:
        return None
    return value
