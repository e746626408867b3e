from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Iterable

from tradesync.common import log_event, now_ms

from .types import ApprovalOperation, Transaction, TransactionReceipt

StoreListener = Callable[[int], None]


class DuplicateTransactionError(RuntimeError):
    def __init__(self, chain_id: int, tx_hash: str) -> None:
        super().__init__(f"Transaction {tx_hash} already exists on chain {chain_id}")
        self.chain_id = chain_id
        self.tx_hash = tx_hash


class TransactionStore:
    """In-memory record of locally submitted on-chain transactions, keyed by chain and hash.

    Every method is synchronous, so a mutation is never observed half-applied by
    another coroutine. Listeners receive the chain id after each mutation.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._buckets: dict[int, dict[str, Transaction]] = {}
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

    def _bucket(self, chain_id: int) -> dict[str, Transaction]:
        return self._buckets.setdefault(chain_id, {})

    def add(self, chain_id: int, tx: Transaction) -> Transaction:
        bucket = self._bucket(chain_id)
        if tx.hash in bucket:
            raise DuplicateTransactionError(chain_id, tx.hash)

        bucket[tx.hash] = tx
        log_event(
            self._logger,
            level="info",
            event="transaction_added",
            message="Transaction added",
            chain_id=chain_id,
            hash=tx.hash,
            hash_type=tx.hash_type.value,
            summary=tx.summary,
        )
        self._notify(chain_id)
        return tx

    def clear_all(self, chain_id: int) -> None:
        if chain_id not in self._buckets:
            return
        self._buckets[chain_id] = {}
        self._notify(chain_id)

    def mark_checked(self, chain_id: int, tx_hash: str, block_number: int) -> None:
        bucket = self._bucket(chain_id)
        tx = bucket.get(tx_hash)
        if tx is None:
            return

        previous = tx.last_checked_block_number
        checked = block_number if previous is None else max(previous, block_number)
        if checked == previous:
            return
        bucket[tx_hash] = dataclasses.replace(tx, last_checked_block_number=checked)
        self._notify(chain_id)

    def finalize(self, chain_id: int, tx_hash: str, receipt: TransactionReceipt) -> None:
        bucket = self._bucket(chain_id)
        tx = bucket.get(tx_hash)
        if tx is None:
            return

        bucket[tx_hash] = dataclasses.replace(tx, receipt=receipt, confirmed_time=now_ms())
        log_event(
            self._logger,
            level="info",
            event="transaction_finalized",
            message="Transaction finalized",
            chain_id=chain_id,
            hash=tx_hash,
            block_number=receipt.block_number,
            status=receipt.status,
        )
        self._notify(chain_id)

    def cancel(self, chain_id: int, tx_hash: str) -> None:
        bucket = self._bucket(chain_id)
        if tx_hash not in bucket:
            log_event(
                self._logger,
                level="warning",
                event="transaction_cancel_unknown",
                message="Attempted to cancel an unknown transaction",
                chain_id=chain_id,
                hash=tx_hash,
            )
            return

        del bucket[tx_hash]
        log_event(
            self._logger,
            level="info",
            event="transaction_cancelled",
            message="Transaction cancelled",
            chain_id=chain_id,
            hash=tx_hash,
        )
        self._notify(chain_id)

    def replace(self, chain_id: int, old_hash: str, new_hash: str) -> None:
        bucket = self._bucket(chain_id)
        tx = bucket.get(old_hash)
        if tx is None:
            log_event(
                self._logger,
                level="warning",
                event="transaction_replace_unknown",
                message="Attempted to replace an unknown transaction",
                chain_id=chain_id,
                old_hash=old_hash,
                new_hash=new_hash,
            )
            return

        bucket[new_hash] = dataclasses.replace(tx, hash=new_hash, added_time=now_ms())
        del bucket[old_hash]
        log_event(
            self._logger,
            level="info",
            event="transaction_replaced",
            message="Transaction replaced by a speed-up",
            chain_id=chain_id,
            old_hash=old_hash,
            new_hash=new_hash,
        )
        self._notify(chain_id)

    def set_transaction_hash(self, chain_id: int, tx_hash: str, transaction_hash: str) -> None:
        bucket = self._bucket(chain_id)
        tx = bucket.get(tx_hash)
        if tx is None:
            log_event(
                self._logger,
                level="warning",
                event="transaction_hash_update_unknown",
                message="Attempted to set the chain hash of an unknown transaction",
                chain_id=chain_id,
                hash=tx_hash,
            )
            return
        if tx.transaction_hash == transaction_hash:
            return

        bucket[tx_hash] = dataclasses.replace(tx, transaction_hash=transaction_hash)
        self._notify(chain_id)

    def get(self, chain_id: int, tx_hash: str) -> Transaction | None:
        return self._buckets.get(chain_id, {}).get(tx_hash)

    def all_transactions(self, chain_id: int) -> dict[str, Transaction]:
        return dict(self._buckets.get(chain_id, {}))

    def pending_transactions(self, chain_id: int) -> list[Transaction]:
        return [tx for tx in self._buckets.get(chain_id, {}).values() if tx.is_pending]

    def all_pending_hashes(self, chain_id: int) -> set[str]:
        return {tx.hash for tx in self.pending_transactions(chain_id)}

    def has_pending_approval(self, chain_id: int, token_address: str, spender: str) -> bool:
        token_key = token_address.lower()
        spender_key = spender.lower()
        for tx in self.pending_transactions(chain_id):
            operation = tx.operation
            if not isinstance(operation, ApprovalOperation):
                continue
            if operation.token_address.lower() == token_key and operation.spender.lower() == spender_key:
                return True
        return False

    def chain_ids(self) -> list[int]:
        return sorted(self._buckets)

    def export_bucket(self, chain_id: int) -> list[Transaction]:
        return list(self._buckets.get(chain_id, {}).values())

    def restore_bucket(self, chain_id: int, transactions: Iterable[Transaction]) -> int:
        self._buckets[chain_id] = {tx.hash: tx for tx in transactions}
        return len(self._buckets[chain_id])
