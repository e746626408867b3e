from __future__ import annotations

import asyncio
import logging
import time

from tradesync.common import log_event, wait_with_stop
from tradesync.state.orders import OrderStore
from tradesync.state.types import OrderStatus

EXPIRABLE_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.PRESIGNATURE_PENDING, OrderStatus.CANCELLING}
)


class ExpiredOrdersSweeper:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain_id: int,
        order_store: OrderStore,
        check_interval_seconds: float,
    ) -> None:
        self._logger = logger
        self._chain_id = chain_id
        self._order_store = order_store
        self._check_interval_seconds = max(1.0, check_interval_seconds)

    def sweep(self, *, now_seconds: float | None = None) -> list[str]:
        now = time.time() if now_seconds is None else now_seconds
        expired_ids = [
            order.id
            for order in self._order_store.all_orders(self._chain_id).values()
            if order.status in EXPIRABLE_STATUSES and order.valid_to < now
        ]
        if not expired_ids:
            return []

        expired = self._order_store.expire_orders(self._chain_id, expired_ids)
        log_event(
            self._logger,
            level="info",
            event="orders_expired",
            message="Marked orders past their validity as expired",
            chain_id=self._chain_id,
            order_ids=expired,
        )
        return expired

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            self.sweep()
            await wait_with_stop(stop_event, self._check_interval_seconds)
