from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from tradesync.clients.chain import ChainRpcClient
from tradesync.clients.quotes import QuoteServiceClient
from tradesync.common import cancel_task, guarded_call, log_event, wait_with_stop
from tradesync.state.orders import OrderStore
from tradesync.state.transactions import TransactionStore
from tradesync.storage import StorageGateway

from .settings import AppSettings

Runner = Callable[[asyncio.Event], Awaitable[None]]


async def bootstrap_dependencies(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    storage: StorageGateway,
    chain: ChainRpcClient,
    quotes: QuoteServiceClient,
) -> None:
    while not stop_event.is_set():
        try:
            await storage.connect()
            await chain.connect()
            await chain.healthcheck()
            await quotes.connect()
            await quotes.healthcheck()
            return
        except Exception as error:
            log_event(
                logger,
                level="exception",
                event="bootstrap_error",
                message="Dependency bootstrap failed",
                error=str(error),
            )
            await guarded_call(
                chain.close,
                logger=logger,
                event="bootstrap_chain_close_failed",
                message="Failed to close chain client during bootstrap retry",
            )
            await guarded_call(
                quotes.close,
                logger=logger,
                event="bootstrap_quotes_close_failed",
                message="Failed to close quote client during bootstrap retry",
            )
            await guarded_call(
                storage.close,
                logger=logger,
                event="bootstrap_storage_close_failed",
                message="Failed to close storage during bootstrap retry",
            )

            await wait_with_stop(stop_event, app_settings.error_backoff_seconds)

    raise RuntimeError("Shutdown requested before dependencies were initialized.")


async def restore_state(
    *,
    logger: logging.Logger,
    storage: StorageGateway,
    chain_id: int,
    tx_store: TransactionStore,
    order_store: OrderStore,
) -> None:
    transactions = await storage.load_transactions(chain_id)
    orders = await storage.load_orders(chain_id)
    tx_store.restore_bucket(chain_id, transactions)
    order_store.restore_bucket(chain_id, orders)
    log_event(
        logger,
        level="info",
        event="state_restored",
        message="Restored persisted transactions and orders",
        chain_id=chain_id,
        transactions=len(transactions),
        orders=len(orders),
    )


class StateSnapshotWriter:
    """Writes dirty chain buckets of both stores back to Redis after changes settle."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        storage: StorageGateway,
        tx_store: TransactionStore,
        order_store: OrderStore,
        debounce_seconds: float,
    ) -> None:
        self._logger = logger
        self._storage = storage
        self._tx_store = tx_store
        self._order_store = order_store
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._dirty_transactions: set[int] = set()
        self._dirty_orders: set[int] = set()
        self._changed = asyncio.Event()
        self._removers = [
            tx_store.add_listener(self._mark_transactions),
            order_store.add_listener(self._mark_orders),
        ]

    def _mark_transactions(self, chain_id: int) -> None:
        self._dirty_transactions.add(chain_id)
        self._changed.set()

    def _mark_orders(self, chain_id: int) -> None:
        self._dirty_orders.add(chain_id)
        self._changed.set()

    async def flush(self) -> int:
        written = 0
        for chain_id in sorted(self._dirty_transactions):
            self._dirty_transactions.discard(chain_id)
            try:
                await self._storage.save_transactions(chain_id, self._tx_store.export_bucket(chain_id))
            except Exception:
                self._mark_transactions(chain_id)
                raise
            written += 1
        for chain_id in sorted(self._dirty_orders):
            self._dirty_orders.discard(chain_id)
            try:
                await self._storage.save_orders(chain_id, self._order_store.export_bucket(chain_id))
            except Exception:
                self._mark_orders(chain_id)
                raise
            written += 1

        if written:
            await self._storage.update_heartbeat()
        return written

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self._changed.wait()
            self._changed.clear()
            await wait_with_stop(stop_event, self._debounce_seconds)
            await self.flush()

    def close(self) -> None:
        for remove in self._removers:
            remove()


async def supervise(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    name: str,
    runner: Runner,
    error_backoff_seconds: float,
) -> None:
    while not stop_event.is_set():
        try:
            await runner(stop_event)
            return
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                logger,
                level="exception",
                event="component_failed",
                message="Background component failed; restarting",
                component=name,
                error=str(error),
            )
            await wait_with_stop(stop_event, error_backoff_seconds)


async def run_reconciliation(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    runners: dict[str, Runner],
) -> None:
    tasks = [
        asyncio.create_task(
            supervise(
                logger=logger,
                stop_event=stop_event,
                name=name,
                runner=runner,
                error_backoff_seconds=app_settings.error_backoff_seconds,
            ),
            name=f"tradesync:{name}",
        )
        for name, runner in runners.items()
    ]
    log_event(
        logger,
        level="info",
        event="reconciliation_started",
        message="Reconciliation components started",
        chain_id=app_settings.chain_id,
        components=sorted(runners),
    )

    try:
        await stop_event.wait()
    finally:
        for task in tasks:
            await cancel_task(task)
        log_event(
            logger,
            level="info",
            event="reconciliation_stopped",
            message="Reconciliation components stopped",
            chain_id=app_settings.chain_id,
        )
