from __future__ import annotations

from typing import Any


def require_non_empty_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value.strip()


def optional_str(value: Any, *, error_message: str = "Expected string value") -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(error_message)
    stripped = value.strip()
    return stripped or None


def optional_bool(
    value: Any,
    *,
    default: bool,
    error_message: str,
    true_values: tuple[str, ...] = ("true", "1", "yes", "on"),
    false_values: tuple[str, ...] = ("false", "0", "no", "off"),
) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in true_values:
            return True
        if lowered in false_values:
            return False
    raise ValueError(error_message)


def require_tasks(payload: dict[str, Any]) -> list[dict[str, Any]]:
    tasks = payload.get("tasks")
    if not isinstance(tasks, list) or not tasks:
        raise ValueError("tasks array is required")
    return [task if isinstance(task, dict) else {} for task in tasks]
