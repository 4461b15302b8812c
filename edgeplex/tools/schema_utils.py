from __future__ import annotations

from typing import Any


def strict_object(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def string_field(description: str | None = None, *, enum: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "string"}
    if description:
        schema["description"] = description
    if enum:
        schema["enum"] = enum
    return schema


def boolean_field(description: str | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "boolean"}
    if description:
        schema["description"] = description
    return schema


def single_required_field_object(field_name: str, field_schema: dict[str, Any]) -> dict[str, Any]:
    return strict_object(properties={field_name: field_schema}, required=[field_name])


def task_array(item_properties: dict[str, Any], required: list[str], description: str) -> dict[str, Any]:
    return {
        "type": "array",
        "description": description,
        "items": strict_object(properties=item_properties, required=required),
    }
