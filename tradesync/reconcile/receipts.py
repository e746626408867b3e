from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from tradesync.common import guarded_call, log_event, now_ms, wait_with_stop
from tradesync.state.transactions import TransactionStore
from tradesync.state.types import Transaction, TransactionReceipt

FIVE_MINUTES_MS = 5 * 60 * 1000
ONE_HOUR_MS = 60 * 60 * 1000

_FETCH_FAILED = object()


class ReceiptSource(Protocol):
    async def get_block_number(self) -> int:
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        ...


def should_check(last_block_number: int, tx: Transaction, *, now: int | None = None) -> bool:
    if tx.receipt is not None:
        return False
    if tx.last_checked_block_number is None:
        return True

    blocks_since_check = last_block_number - tx.last_checked_block_number
    if blocks_since_check < 1:
        return False

    age_ms = (now_ms() if now is None else now) - tx.added_time
    if age_ms < FIVE_MINUTES_MS:
        return True
    if age_ms < ONE_HOUR_MS:
        return blocks_since_check > 2
    return blocks_since_check > 9


class ReceiptPoller:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain_id: int,
        tx_store: TransactionStore,
        chain: ReceiptSource,
        poll_interval_seconds: float,
    ) -> None:
        self._logger = logger
        self._chain_id = chain_id
        self._tx_store = tx_store
        self._chain = chain
        self._poll_interval_seconds = max(1.0, poll_interval_seconds)

    async def _check(self, tx: Transaction, block_number: int) -> bool:
        chain_hash = tx.chain_hash
        if chain_hash is None:
            return False

        receipt = await guarded_call(
            lambda: self._chain.get_transaction_receipt(chain_hash),
            logger=self._logger,
            event="receipt_fetch_failed",
            message="Failed to fetch transaction receipt",
            default=_FETCH_FAILED,
            chain_id=self._chain_id,
            hash=tx.hash,
        )
        if receipt is _FETCH_FAILED:
            return False
        if receipt is None:
            self._tx_store.mark_checked(self._chain_id, tx.hash, block_number)
            return False

        self._tx_store.finalize(self._chain_id, tx.hash, receipt)
        return True

    async def poll_once(self) -> int:
        pending = self._tx_store.pending_transactions(self._chain_id)
        if not pending:
            return 0

        block_number = await guarded_call(
            self._chain.get_block_number,
            logger=self._logger,
            event="block_number_failed",
            message="Failed to read latest block number",
            chain_id=self._chain_id,
        )
        if block_number is None:
            return 0

        due = [tx for tx in pending if should_check(block_number, tx)]
        results = await asyncio.gather(*(self._check(tx, block_number) for tx in due))
        finalized = sum(1 for done in results if done)
        if finalized:
            log_event(
                self._logger,
                level="info",
                event="receipts_finalized",
                message="Finalized mined transactions",
                chain_id=self._chain_id,
                block_number=block_number,
                finalized=finalized,
                checked=len(due),
            )
        return finalized

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.poll_once()
            await wait_with_stop(stop_event, self._poll_interval_seconds)
