from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from tradesync.clients.mempool import MempoolEvent
from tradesync.common import log_event, wait_with_stop
from tradesync.state.transactions import TransactionStore


class MempoolSource(Protocol):
    async def subscribe(self, tx_hash: str) -> Any:
        ...


@dataclass(slots=True)
class _Watch:
    hash: str
    subscription: Any = None
    is_speedup: bool = False


class CancelReplaceWatcher:
    """Keeps one mempool subscription per pending transaction hash.

    A speed-up re-keys the transaction under the replacement hash. A confirmation
    for a different hash with no speed-up seen means a cancellation landed at
    the same nonce, so the transaction is dropped.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain_id: int,
        tx_store: TransactionStore,
        mempool: MempoolSource,
        resync_interval_seconds: float = 30.0,
    ) -> None:
        self._logger = logger
        self._chain_id = chain_id
        self._tx_store = tx_store
        self._mempool = mempool
        self._resync_interval_seconds = max(1.0, resync_interval_seconds)
        self._watches: dict[str, _Watch] = {}
        self._changed = asyncio.Event()
        self._remove_listener = tx_store.add_listener(self._on_store_change)

    @property
    def watched_hashes(self) -> set[str]:
        return set(self._watches)

    def _on_store_change(self, chain_id: int) -> None:
        if chain_id == self._chain_id:
            self._changed.set()

    def _handle_speed_up(self, watch: _Watch, event: MempoolEvent) -> None:
        watch.is_speedup = True
        if event.hash:
            self._tx_store.replace(self._chain_id, watch.hash, event.hash)

    def _handle_confirmed(self, watch: _Watch, event: MempoolEvent) -> None:
        if event.hash and event.hash != watch.hash and not watch.is_speedup:
            self._tx_store.cancel(self._chain_id, watch.hash)

    async def _watch(self, tx_hash: str) -> None:
        watch = _Watch(hash=tx_hash)
        try:
            subscription = await self._mempool.subscribe(tx_hash)
            subscription.on_speed_up(lambda event: self._handle_speed_up(watch, event))
            subscription.on_confirmed(lambda event: self._handle_confirmed(watch, event))
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                self._logger,
                level="warning",
                event="mempool_watch_failed",
                message="Failed to watch transaction in the mempool",
                chain_id=self._chain_id,
                hash=tx_hash,
                error=str(error),
                error_type=type(error).__name__,
            )
            return

        watch.subscription = subscription
        self._watches[tx_hash] = watch

    async def _unwatch(self, tx_hash: str) -> None:
        watch = self._watches.pop(tx_hash, None)
        if watch is None or watch.subscription is None:
            return
        try:
            await watch.subscription.unsubscribe()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                self._logger,
                level="warning",
                event="mempool_unwatch_failed",
                message="Failed to unsubscribe transaction from the mempool",
                chain_id=self._chain_id,
                hash=tx_hash,
                error=str(error),
                error_type=type(error).__name__,
            )

    async def sync(self) -> None:
        pending = self._tx_store.all_pending_hashes(self._chain_id)
        watched = set(self._watches)

        for tx_hash in sorted(watched - pending):
            await self._unwatch(tx_hash)
        for tx_hash in sorted(pending - watched):
            await self._watch(tx_hash)

    async def run(self, stop_event: asyncio.Event) -> None:
        log_event(
            self._logger,
            level="info",
            event="mempool_watcher_started",
            message="Mempool watcher started",
            chain_id=self._chain_id,
        )
        while not stop_event.is_set():
            self._changed.clear()
            await self.sync()
            await wait_with_stop(self._changed, self._resync_interval_seconds)

    async def close(self) -> None:
        self._remove_listener()
        for tx_hash in sorted(self._watches):
            await self._unwatch(tx_hash)
