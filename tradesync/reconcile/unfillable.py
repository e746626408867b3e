from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

from tradesync.clients.quotes import PriceInformation, QuoteParams
from tradesync.common import guarded_call, log_event, wait_with_stop
from tradesync.state.orders import OrderStore
from tradesync.state.types import Order, OrderKind

QUOTE_VALIDITY_SECONDS = 3000


class QuoteSource(Protocol):
    async def get_best_quote(self, params: QuoteParams) -> PriceInformation:
        ...


def build_quote_params(chain_id: int, order: Order, *, now_seconds: float | None = None) -> QuoteParams:
    if order.kind == OrderKind.SELL:
        amount = order.sell_amount
        base_token, quote_token = order.sell_token, order.buy_token
    else:
        amount = order.buy_amount
        base_token, quote_token = order.buy_token, order.sell_token

    issued_at = time.time() if now_seconds is None else now_seconds
    return QuoteParams(
        chain_id=chain_id,
        amount=amount,
        kind=order.kind,
        sell_token=order.sell_token,
        buy_token=order.buy_token,
        base_token=base_token,
        quote_token=quote_token,
        from_decimals=order.input_token.decimals,
        to_decimals=order.output_token.decimals,
        valid_to=int(issued_at) + QUOTE_VALIDITY_SECONDS,
    )


def is_order_unfillable(order: Order, quoted_amount: int, tolerance_bps: int) -> bool:
    """Compare a fresh quote with the order's limit amounts.

    Sell orders are quoted for ``sell_amount`` and the quote is the buy amount
    the market offers now; buy orders are quoted for ``buy_amount`` and the quote
    is the sell amount the market asks for.

    The signed ``fee_amount`` (in sell token) absorbs movement first: a buy
    order may spend ``sell_amount + fee_amount``, and for a sell order the fee
    is valued in buy token at the order's own limit rate. ``tolerance_bps`` is
    how much further the market may move before the order is flagged.
    """
    keep_bps = 10_000 - tolerance_bps
    if order.kind == OrderKind.SELL:
        offered = (quoted_amount * order.sell_amount + order.fee_amount * order.buy_amount) * 10_000
        return offered < order.buy_amount * order.sell_amount * keep_bps
    return (order.sell_amount + order.fee_amount) * 10_000 < quoted_amount * keep_bps


class UnfillableOrdersPoller:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain_id: int,
        order_store: OrderStore,
        quotes: QuoteSource,
        poll_interval_ms: int,
        tolerance_bps: int,
    ) -> None:
        self._logger = logger
        self._chain_id = chain_id
        self._order_store = order_store
        self._quotes = quotes
        self._poll_interval_seconds = max(1, poll_interval_ms) / 1000
        self._tolerance_bps = min(9_999, max(0, tolerance_bps))
        self._issued: dict[str, int] = {}
        self._applied: dict[str, int] = {}
        self._orders_changed = asyncio.Event()
        self._remove_listener = order_store.add_listener(self._on_store_change)

    def _on_store_change(self, chain_id: int) -> None:
        if chain_id == self._chain_id:
            self._orders_changed.set()

    def _next_generation(self, order_id: str) -> int:
        generation = self._issued.get(order_id, 0) + 1
        self._issued[order_id] = generation
        return generation

    def _forget_settled(self, pending_ids: set[str]) -> None:
        for order_id in list(self._issued):
            if order_id not in pending_ids:
                self._issued.pop(order_id, None)
                self._applied.pop(order_id, None)

    async def _check_order(self, order: Order) -> bool:
        generation = self._next_generation(order.id)
        params = build_quote_params(self._chain_id, order)
        price = await guarded_call(
            lambda: self._quotes.get_best_quote(params),
            logger=self._logger,
            event="unfillable_quote_failed",
            message="Quote request for pending order failed",
            chain_id=self._chain_id,
            order_id=order.id,
        )
        if price is None or not price.amount:
            return False

        if generation < self._applied.get(order.id, 0):
            log_event(
                self._logger,
                level="debug",
                event="unfillable_quote_stale",
                message="Discarded a quote older than the latest applied one",
                order_id=order.id,
                generation=generation,
                applied_generation=self._applied[order.id],
            )
            return False
        self._applied[order.id] = generation

        current = self._order_store.get(self._chain_id, order.id)
        if current is None or not current.is_pending:
            return False

        is_unfillable = is_order_unfillable(current, price.amount, self._tolerance_bps)
        if current.is_unfillable == is_unfillable:
            return False
        return self._order_store.set_is_unfillable(self._chain_id, order.id, is_unfillable)

    async def poll_once(self) -> int:
        pending = self._order_store.pending_orders(self._chain_id)
        self._forget_settled({order.id for order in pending})
        if not pending:
            return 0

        results = await asyncio.gather(*(self._check_order(order) for order in pending))
        writes = sum(1 for changed in results if changed)
        log_event(
            self._logger,
            level="debug",
            event="unfillable_poll_completed",
            message="Checked pending orders against fresh quotes",
            chain_id=self._chain_id,
            pending=len(pending),
            updated=writes,
        )
        return writes

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            self._orders_changed.clear()
            if not self._order_store.pending_orders(self._chain_id):
                await wait_with_stop(self._orders_changed, self._poll_interval_seconds)
                continue

            await self.poll_once()
            await wait_with_stop(stop_event, self._poll_interval_seconds)

    def close(self) -> None:
        self._remove_listener()
