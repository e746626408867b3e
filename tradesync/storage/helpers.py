from __future__ import annotations

import json
from typing import Any


def serialize_record(value: dict[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def parse_record(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        candidate = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return candidate if isinstance(candidate, dict) else None
