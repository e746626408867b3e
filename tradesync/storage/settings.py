from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or value == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or value == "":
            return default
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _sanitize_prefix(value: str, default: str) -> str:
    normalized = value.strip().strip(":")
    return normalized or default


@dataclass(slots=True)
class StorageSettings:
    redis_url: str
    key_prefix: str
    heartbeat_key: str
    persist_debounce_seconds: float

    @classmethod
    def from_env(cls) -> "StorageSettings":
        return cls(
            redis_url=os.getenv("REDIS_URL", "redis://redis:6379/0"),
            key_prefix=_sanitize_prefix(os.getenv("REDIS_KEY_PREFIX", "tradesync"), "tradesync"),
            heartbeat_key=os.getenv("REDIS_HEARTBEAT_KEY", "tradesync:heartbeat"),
            persist_debounce_seconds=max(
                0.0,
                to_float(os.getenv("PERSIST_DEBOUNCE_SECONDS"), 1.0),
            ),
        )

    def transactions_key(self, chain_id: int) -> str:
        return f"{self.key_prefix}:transactions:{chain_id}"

    def orders_key(self, chain_id: int) -> str:
        return f"{self.key_prefix}:orders:{chain_id}"
