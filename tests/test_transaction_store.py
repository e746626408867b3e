"""Tests for the in-memory transaction store."""

from __future__ import annotations

import pytest

from tests.conftest import CHAIN_ID, OWNER, SPENDER, USDC, make_transaction
from tradesync.state import (
    ApprovalOperation,
    DuplicateTransactionError,
    HashType,
    PresignOperation,
    TransactionReceipt,
)


def _make_receipt(tx_hash: str, block_number: int = 100) -> TransactionReceipt:
    return TransactionReceipt(
        transaction_hash=tx_hash,
        block_number=block_number,
        block_hash="0xblock",
        status=1,
        from_address=OWNER,
        to_address=USDC.address,
        contract_address=None,
        transaction_index=3,
        gas_used=46_000,
    )


class TestAdd:
    def test_add_stores_transaction(self, tx_store):
        tx = make_transaction("0xaaa1")

        tx_store.add(CHAIN_ID, tx)

        assert tx_store.get(CHAIN_ID, "0xaaa1") == tx
        assert tx_store.get(CHAIN_ID, "0xaaa1").transaction_hash is None
        assert tx_store.all_pending_hashes(CHAIN_ID) == {"0xaaa1"}

    def test_duplicate_hash_raises(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))

        with pytest.raises(DuplicateTransactionError):
            tx_store.add(CHAIN_ID, make_transaction("0xaaa1", summary="other"))

        assert tx_store.get(CHAIN_ID, "0xaaa1").summary == "Approve USDC"

    def test_same_hash_on_other_chain_is_independent(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))
        tx_store.add(5, make_transaction("0xaaa1"))

        assert tx_store.chain_ids() == [1, 5]

    def test_listener_notified_and_removable(self, tx_store):
        seen = []
        remove = tx_store.add_listener(seen.append)

        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))
        remove()
        tx_store.add(CHAIN_ID, make_transaction("0xaaa2"))

        assert seen == [CHAIN_ID]


class TestMarkChecked:
    def test_block_number_never_decreases(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))

        tx_store.mark_checked(CHAIN_ID, "0xaaa1", 10)
        tx_store.mark_checked(CHAIN_ID, "0xaaa1", 7)

        assert tx_store.get(CHAIN_ID, "0xaaa1").last_checked_block_number == 10

        tx_store.mark_checked(CHAIN_ID, "0xaaa1", 12)
        assert tx_store.get(CHAIN_ID, "0xaaa1").last_checked_block_number == 12

    def test_unknown_hash_is_noop(self, tx_store):
        seen = []
        tx_store.add_listener(seen.append)

        tx_store.mark_checked(CHAIN_ID, "0xmissing", 10)

        assert tx_store.get(CHAIN_ID, "0xmissing") is None
        assert seen == []


class TestFinalize:
    def test_finalize_sets_receipt_and_confirmed_time(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))
        receipt = _make_receipt("0xaaa1")

        tx_store.finalize(CHAIN_ID, "0xaaa1", receipt)

        tx = tx_store.get(CHAIN_ID, "0xaaa1")
        assert tx.receipt == receipt
        assert tx.confirmed_time is not None
        assert tx.is_pending is False
        assert tx_store.all_pending_hashes(CHAIN_ID) == set()

    def test_finalize_unknown_hash_is_noop(self, tx_store):
        tx_store.finalize(CHAIN_ID, "0xmissing", _make_receipt("0xmissing"))

        assert tx_store.all_transactions(CHAIN_ID) == {}


class TestCancelAndReplace:
    def test_cancel_removes_transaction(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))

        tx_store.cancel(CHAIN_ID, "0xaaa1")

        assert tx_store.get(CHAIN_ID, "0xaaa1") is None

    def test_cancel_unknown_hash_is_noop(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))

        tx_store.cancel(CHAIN_ID, "0xmissing")

        assert set(tx_store.all_transactions(CHAIN_ID)) == {"0xaaa1"}

    def test_replace_keeps_identity_except_hash_and_added_time(self, tx_store):
        original = make_transaction(
            "0xaaa1",
            last_checked_block_number=9,
            operation=ApprovalOperation(token_address=USDC.address, spender=SPENDER),
        )
        tx_store.add(CHAIN_ID, original)

        tx_store.replace(CHAIN_ID, "0xaaa1", "0xbbb2")

        assert tx_store.get(CHAIN_ID, "0xaaa1") is None
        replaced = tx_store.get(CHAIN_ID, "0xbbb2")
        assert replaced.hash == "0xbbb2"
        assert replaced.added_time != original.added_time
        assert replaced.summary == original.summary
        assert replaced.from_address == original.from_address
        assert replaced.hash_type == original.hash_type
        assert replaced.operation == original.operation
        assert replaced.last_checked_block_number == 9
        assert replaced.transaction_hash is None

    def test_replace_unknown_hash_is_noop(self, tx_store):
        tx_store.replace(CHAIN_ID, "0xmissing", "0xbbb2")

        assert tx_store.all_transactions(CHAIN_ID) == {}


class TestQueries:
    def test_has_pending_approval_is_case_insensitive(self, tx_store):
        tx_store.add(
            CHAIN_ID,
            make_transaction(
                "0xaaa1",
                operation=ApprovalOperation(token_address=USDC.address, spender=SPENDER),
            ),
        )

        assert tx_store.has_pending_approval(CHAIN_ID, USDC.address.lower(), SPENDER.upper().replace("0X", "0x"))
        assert not tx_store.has_pending_approval(CHAIN_ID, USDC.address, OWNER)

    def test_finalized_approval_is_not_pending(self, tx_store):
        tx_store.add(
            CHAIN_ID,
            make_transaction(
                "0xaaa1",
                operation=ApprovalOperation(token_address=USDC.address, spender=SPENDER),
            ),
        )
        tx_store.finalize(CHAIN_ID, "0xaaa1", _make_receipt("0xaaa1"))

        assert not tx_store.has_pending_approval(CHAIN_ID, USDC.address, SPENDER)

    def test_presign_operation_is_not_an_approval(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1", operation=PresignOperation(order_id="order-1")))

        assert not tx_store.has_pending_approval(CHAIN_ID, USDC.address, SPENDER)

    def test_chain_hash_for_multisig_requires_transaction_hash(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("safe-1", hash_type=HashType.MULTISIG_TX))

        assert tx_store.get(CHAIN_ID, "safe-1").chain_hash is None

        tx_store.set_transaction_hash(CHAIN_ID, "safe-1", "0xccc3")

        assert tx_store.get(CHAIN_ID, "safe-1").chain_hash == "0xccc3"
        assert make_transaction("0xaaa1").chain_hash == "0xaaa1"

    def test_clear_all_empties_only_that_chain(self, tx_store):
        tx_store.add(CHAIN_ID, make_transaction("0xaaa1"))
        tx_store.add(5, make_transaction("0xaaa2"))

        tx_store.clear_all(CHAIN_ID)

        assert tx_store.all_transactions(CHAIN_ID) == {}
        assert set(tx_store.all_transactions(5)) == {"0xaaa2"}
