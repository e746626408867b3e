from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable

from tradesync.common import log_event

from .types import PENDING_ORDER_STATUSES, Order, OrderStatus

StoreListener = Callable[[int], None]

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PRESIGNATURE_PENDING: frozenset(
        {OrderStatus.PENDING, OrderStatus.EXPIRED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PENDING: frozenset(
        {
            OrderStatus.CONFIRMED,
            OrderStatus.EXPIRED,
            OrderStatus.CANCELLING,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.CANCELLING: frozenset(
        {OrderStatus.CANCELLED, OrderStatus.CONFIRMED, OrderStatus.EXPIRED}
    ),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class DuplicateOrderError(RuntimeError):
    def __init__(self, chain_id: int, order_id: str) -> None:
        super().__init__(f"Order {order_id} already exists on chain {chain_id}")
        self.chain_id = chain_id
        self.order_id = order_id


class OrderStore:
    """In-memory record of off-chain orders keyed by chain and server-assigned id.

    Amounts are fixed at insertion; only ``status`` and ``is_unfillable`` change.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._buckets: dict[int, dict[str, Order]] = {}
        self._listeners: list[StoreListener] = []

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, chain_id: int) -> None:
        for listener in list(self._listeners):
            listener(chain_id)

    def _bucket(self, chain_id: int) -> dict[str, Order]:
        return self._buckets.setdefault(chain_id, {})

    def add_pending_order(self, chain_id: int, order: Order) -> Order:
        bucket = self._bucket(chain_id)
        if order.id in bucket:
            raise DuplicateOrderError(chain_id, order.id)

        bucket[order.id] = order
        log_event(
            self._logger,
            level="info",
            event="order_added",
            message="Order added",
            chain_id=chain_id,
            order_id=order.id,
            status=order.status.value,
            summary=order.summary,
        )
        self._notify(chain_id)
        return order

    def update_status(self, chain_id: int, order_id: str, status: OrderStatus) -> bool:
        bucket = self._bucket(chain_id)
        order = bucket.get(order_id)
        if order is None:
            log_event(
                self._logger,
                level="warning",
                event="order_status_unknown",
                message="Status update for an unknown order",
                chain_id=chain_id,
                order_id=order_id,
                status=status.value,
            )
            return False
        if order.status == status:
            return False
        if status not in ALLOWED_TRANSITIONS[order.status]:
            log_event(
                self._logger,
                level="warning",
                event="order_status_transition_ignored",
                message="Ignored an order status transition that is not allowed",
                chain_id=chain_id,
                order_id=order_id,
                current_status=order.status.value,
                requested_status=status.value,
            )
            return False

        bucket[order_id] = replace(order, status=status)
        log_event(
            self._logger,
            level="info",
            event="order_status_changed",
            message="Order status changed",
            chain_id=chain_id,
            order_id=order_id,
            previous_status=order.status.value,
            status=status.value,
        )
        self._notify(chain_id)
        return True

    def _update_many(self, chain_id: int, order_ids: Iterable[str], status: OrderStatus) -> list[str]:
        return [order_id for order_id in order_ids if self.update_status(chain_id, order_id, status)]

    def presign_orders(self, chain_id: int, order_ids: Iterable[str]) -> list[str]:
        return self._update_many(chain_id, order_ids, OrderStatus.PENDING)

    def fulfill_orders(self, chain_id: int, order_ids: Iterable[str]) -> list[str]:
        return self._update_many(chain_id, order_ids, OrderStatus.CONFIRMED)

    def expire_orders(self, chain_id: int, order_ids: Iterable[str]) -> list[str]:
        return self._update_many(chain_id, order_ids, OrderStatus.EXPIRED)

    def request_cancellation(self, chain_id: int, order_id: str) -> bool:
        return self.update_status(chain_id, order_id, OrderStatus.CANCELLING)

    def cancel_orders(self, chain_id: int, order_ids: Iterable[str]) -> list[str]:
        return self._update_many(chain_id, order_ids, OrderStatus.CANCELLED)

    def set_is_unfillable(self, chain_id: int, order_id: str, is_unfillable: bool) -> bool:
        bucket = self._bucket(chain_id)
        order = bucket.get(order_id)
        if order is None or order.is_unfillable == is_unfillable:
            return False

        bucket[order_id] = replace(order, is_unfillable=is_unfillable)
        log_event(
            self._logger,
            level="info",
            event="order_unfillable_changed",
            message="Order fillability changed",
            chain_id=chain_id,
            order_id=order_id,
            is_unfillable=is_unfillable,
        )
        self._notify(chain_id)
        return True

    def clear_orders(self, chain_id: int) -> None:
        if chain_id not in self._buckets:
            return
        self._buckets[chain_id] = {}
        self._notify(chain_id)

    def get(self, chain_id: int, order_id: str) -> Order | None:
        return self._buckets.get(chain_id, {}).get(order_id)

    def all_orders(self, chain_id: int) -> dict[str, Order]:
        return dict(self._buckets.get(chain_id, {}))

    def pending_orders(self, chain_id: int) -> list[Order]:
        return [
            order
            for order in self._buckets.get(chain_id, {}).values()
            if order.status in PENDING_ORDER_STATUSES
        ]

    def chain_ids(self) -> list[int]:
        return sorted(self._buckets)

    def export_bucket(self, chain_id: int) -> list[Order]:
        return list(self._buckets.get(chain_id, {}).values())

    def restore_bucket(self, chain_id: int, orders: Iterable[Order]) -> int:
        self._buckets[chain_id] = {order.id: order for order in orders}
        return len(self._buckets[chain_id])
