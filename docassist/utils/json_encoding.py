from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if hasattr(value, "model_dump") and callable(value.model_dump):
        return value.model_dump(mode="json")
    return str(value)


def encode_jsonb(value: Any) -> str | None:
    """Serialize a value into a JSON string suitable for jsonb parameters; ``None`` stays SQL NULL."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=_json_default)


def decode_jsonb(value: Any) -> Any:
    """Decode a jsonb column value into native Python structures."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def decode_string_map(value: Any) -> dict[str, str]:
    """Decode a jsonb object whose values are rendered as strings."""
    decoded = decode_jsonb(value)
    if not isinstance(decoded, Mapping):
        return {}
    return {str(key): stringify_value(item) for key, item in decoded.items()}


def stringify_value(value: Any) -> str:
    """Render a tool argument value as the text stored in collected data."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    return json.dumps(value, ensure_ascii=False, default=_json_default)


__all__ = ["decode_jsonb", "decode_string_map", "encode_jsonb", "stringify_value"]
