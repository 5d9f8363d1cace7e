"""
Helpers for moving between snake_case records and the camelCase wire format.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def convert_keys(data: Any, mode: str) -> Any:
    """
    Recursively rename dict keys.

    Args:
        data: A dict, list or scalar.
        mode: "snake_to_camel" or "camel_to_snake".
    """
    if mode == "snake_to_camel":
        convert = snake_to_camel
    elif mode == "camel_to_snake":
        convert = camel_to_snake
    else:
        raise ValueError(f"Unknown conversion mode: {mode}")

    if isinstance(data, dict):
        return {
            (convert(k) if isinstance(k, str) else k): convert_keys(v, mode)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item, mode) for item in data]
    return data


def to_jsonable(data: Any) -> Any:
    """Render dates and datetimes as ISO strings so payloads are JSON-safe."""
    if isinstance(data, dict):
        return {k: to_jsonable(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [to_jsonable(item) for item in data]
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    return data
