from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from tradesync.common import guarded_call, log_event, wait_with_stop
from tradesync.state.orders import OrderStore
from tradesync.state.types import Order, OrderStatus

TRACKED_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.PRESIGNATURE_PENDING, OrderStatus.CANCELLING}
)


class SettlementOrderSource(Protocol):
    async def get_order(self, order_id: str) -> dict[str, Any]:
        ...


class OrderStatusPoller:
    """Applies the settlement service's view of each open order to the order store.

    ``open`` moves a presignature-pending order to pending; ``fulfilled``,
    ``expired`` and ``cancelled`` are terminal. Other statuses are left alone.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain_id: int,
        order_store: OrderStore,
        settlement: SettlementOrderSource,
        poll_interval_seconds: float,
    ) -> None:
        self._logger = logger
        self._chain_id = chain_id
        self._order_store = order_store
        self._settlement = settlement
        self._poll_interval_seconds = max(1.0, poll_interval_seconds)

    async def _remote_status(self, order: Order) -> str | None:
        data = await guarded_call(
            lambda: self._settlement.get_order(order.id),
            logger=self._logger,
            event="order_status_fetch_failed",
            message="Failed to fetch order status from settlement service",
            chain_id=self._chain_id,
            order_id=order.id,
        )
        if not data:
            return None
        status = data.get("status")
        return str(status) if status else None

    async def poll_once(self) -> int:
        tracked = [
            order
            for order in self._order_store.all_orders(self._chain_id).values()
            if order.status in TRACKED_STATUSES
        ]
        if not tracked:
            return 0

        remote = await asyncio.gather(*(self._remote_status(order) for order in tracked))
        presigned: list[str] = []
        fulfilled: list[str] = []
        expired: list[str] = []
        cancelled: list[str] = []
        for order, status in zip(tracked, remote):
            if status == "open" and order.status == OrderStatus.PRESIGNATURE_PENDING:
                presigned.append(order.id)
            elif status == "fulfilled":
                fulfilled.append(order.id)
            elif status == "expired":
                expired.append(order.id)
            elif status == "cancelled":
                cancelled.append(order.id)

        changed = (
            len(self._order_store.presign_orders(self._chain_id, presigned))
            + len(self._order_store.fulfill_orders(self._chain_id, fulfilled))
            + len(self._order_store.expire_orders(self._chain_id, expired))
            + len(self._order_store.cancel_orders(self._chain_id, cancelled))
        )
        if changed:
            log_event(
                self._logger,
                level="info",
                event="order_statuses_applied",
                message="Applied settlement order statuses",
                chain_id=self._chain_id,
                presigned=presigned,
                fulfilled=fulfilled,
                expired=expired,
                cancelled=cancelled,
            )
        return changed

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.poll_once()
            await wait_with_stop(stop_event, self._poll_interval_seconds)
