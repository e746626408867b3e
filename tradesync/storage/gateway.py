from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from redis import asyncio as redis
from redis.asyncio.client import Redis

from tradesync.common import log_event, now_iso
from tradesync.state.serialization import (
    order_from_dict,
    order_to_dict,
    transaction_from_dict,
    transaction_to_dict,
)
from tradesync.state.types import Order, Transaction

from .helpers import parse_record, serialize_record
from .settings import StorageSettings

RecordT = TypeVar("RecordT")


class StorageGateway:
    """Redis persistence for the transaction and order stores.

    Each chain bucket is one Redis hash of JSON records, rewritten as a whole
    inside a MULTI/EXEC pipeline so readers never see a partial bucket.
    """

    def __init__(self, settings: StorageSettings, logger: logging.Logger) -> None:
        self.settings = settings
        self._logger = logger
        self._redis: Redis | None = None

    async def connect(self) -> None:
        self._redis = redis.from_url(self.settings.redis_url, decode_responses=True)
        await self._redis.ping()
        log_event(
            self._logger,
            level="info",
            event="redis_connected",
            message="Connected to Redis",
            redis_url=self.settings.redis_url,
        )

    async def close(self) -> None:
        if self._redis is not None:
            close = getattr(self._redis, "aclose", None)
            if close:
                await close()
            else:
                await self._redis.close()
            self._redis = None

    async def _replace_bucket(self, key: str, mapping: dict[str, str]) -> None:
        redis_client = self._require_redis()
        pipeline = redis_client.pipeline(transaction=True)
        pipeline.delete(key)
        if mapping:
            pipeline.hset(key, mapping=mapping)
        await pipeline.execute()

    async def _load_bucket(
        self,
        key: str,
        parse: Callable[[dict[str, Any]], RecordT],
    ) -> list[RecordT]:
        redis_client = self._require_redis()
        raw_records = await redis_client.hgetall(key)

        records: list[RecordT] = []
        for field, raw in raw_records.items():
            payload = parse_record(raw)
            if payload is None:
                log_event(
                    self._logger,
                    level="warning",
                    event="storage_record_unreadable",
                    message="Skipped a stored record that is not valid JSON",
                    key=key,
                    field=field,
                )
                continue
            try:
                records.append(parse(payload))
            except (KeyError, TypeError, ValueError) as error:
                log_event(
                    self._logger,
                    level="warning",
                    event="storage_record_invalid",
                    message="Skipped a stored record with an invalid shape",
                    key=key,
                    field=field,
                    error=str(error),
                )
        return records

    async def save_transactions(self, chain_id: int, transactions: list[Transaction]) -> None:
        mapping = {tx.hash: serialize_record(transaction_to_dict(tx)) for tx in transactions}
        await self._replace_bucket(self.settings.transactions_key(chain_id), mapping)

    async def load_transactions(self, chain_id: int) -> list[Transaction]:
        return await self._load_bucket(self.settings.transactions_key(chain_id), transaction_from_dict)

    async def save_orders(self, chain_id: int, orders: list[Order]) -> None:
        mapping = {order.id: serialize_record(order_to_dict(order)) for order in orders}
        await self._replace_bucket(self.settings.orders_key(chain_id), mapping)

    async def load_orders(self, chain_id: int) -> list[Order]:
        return await self._load_bucket(self.settings.orders_key(chain_id), order_from_dict)

    async def update_heartbeat(self) -> None:
        redis_client = self._require_redis()
        await redis_client.set(self.settings.heartbeat_key, now_iso())

    def _require_redis(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("Redis client is not initialized.")
        return self._redis
