"""Tests for approval state derivation and the approve flow."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.conftest import CHAIN_ID, OWNER, SPENDER, USDC, make_transaction
from tradesync.clients.chain import MAX_UINT256
from tradesync.reconcile import ApprovalManager, ApprovalState, calculate_gas_margin, compute_approval_state
from tradesync.state import (
    NATIVE_TOKEN_ADDRESS,
    ApprovalOperation,
    HashType,
    Token,
    TokenAmount,
    TransactionReceipt,
)

ETH = Token(chain_id=CHAIN_ID, address=NATIVE_TOKEN_ADDRESS, decimals=18, symbol="ETH")


def _make_chain(*, allowance: int = 0, tx_hash: str = "0xapprove1") -> AsyncMock:
    chain = AsyncMock()
    chain.get_allowance.return_value = allowance
    chain.estimate_approve_gas.return_value = 60_000
    chain.send_approve.return_value = tx_hash
    return chain


def _make_manager(logger, chain, tx_store, **overrides) -> ApprovalManager:
    params = {
        "logger": logger,
        "chain": chain,
        "tx_store": tx_store,
        "chain_id": CHAIN_ID,
        "owner": OWNER,
    }
    params.update(overrides)
    return ApprovalManager(**params)


class TestComputeApprovalState:
    def test_missing_inputs_are_unknown(self):
        amount = TokenAmount(token=USDC, raw=100)

        assert compute_approval_state(
            amount_to_approve=None, spender=SPENDER, allowance=0, has_pending_approval=False
        ) == ApprovalState.UNKNOWN
        assert compute_approval_state(
            amount_to_approve=amount, spender=None, allowance=0, has_pending_approval=False
        ) == ApprovalState.UNKNOWN
        assert compute_approval_state(
            amount_to_approve=amount, spender=SPENDER, allowance=None, has_pending_approval=False
        ) == ApprovalState.UNKNOWN

    def test_native_token_is_always_approved(self):
        assert compute_approval_state(
            amount_to_approve=TokenAmount(token=ETH, raw=10**18),
            spender=SPENDER,
            allowance=None,
            has_pending_approval=False,
        ) == ApprovalState.APPROVED

    @pytest.mark.parametrize(
        ("allowance", "has_pending", "expected"),
        [
            (0, False, ApprovalState.NOT_APPROVED),
            (99, True, ApprovalState.PENDING),
            (100, False, ApprovalState.APPROVED),
            (100, True, ApprovalState.APPROVED),
        ],
    )
    def test_allowance_comparison(self, allowance, has_pending, expected):
        assert compute_approval_state(
            amount_to_approve=TokenAmount(token=USDC, raw=100),
            spender=SPENDER,
            allowance=allowance,
            has_pending_approval=has_pending,
        ) == expected

    def test_gas_margin(self):
        assert calculate_gas_margin(60_000, 2_000) == 72_000
        assert calculate_gas_margin(150_000, 2_000) == 180_000


class TestGetState:
    async def test_allowance_read_failure_is_unknown(self, logger, tx_store):
        chain = _make_chain()
        chain.get_allowance.side_effect = RuntimeError("rpc down")
        manager = _make_manager(logger, chain, tx_store)

        state = await manager.get_state(TokenAmount(token=USDC, raw=100), SPENDER)

        assert state == ApprovalState.UNKNOWN

    async def test_native_token_skips_allowance_read(self, logger, tx_store):
        chain = _make_chain()
        manager = _make_manager(logger, chain, tx_store)

        state = await manager.get_state(TokenAmount(token=ETH, raw=1), SPENDER)

        assert state == ApprovalState.APPROVED
        chain.get_allowance.assert_not_awaited()


class TestApprove:
    async def test_not_approved_to_pending_to_approved(self, logger, tx_store):
        chain = _make_chain(allowance=0)
        manager = _make_manager(logger, chain, tx_store)
        amount = TokenAmount(token=USDC, raw=100)

        assert await manager.get_state(amount, SPENDER) == ApprovalState.NOT_APPROVED

        tx_hash = await manager.approve(amount, SPENDER)

        assert tx_hash == "0xapprove1"
        tx = tx_store.get(CHAIN_ID, "0xapprove1")
        assert tx.summary == "Approve USDC"
        assert tx.hash_type == HashType.ETHEREUM_TX
        assert tx.from_address == OWNER
        assert tx.operation == ApprovalOperation(token_address=USDC.address, spender=SPENDER)
        assert await manager.get_state(amount, SPENDER) == ApprovalState.PENDING

        tx_store.finalize(
            CHAIN_ID,
            "0xapprove1",
            TransactionReceipt(
                transaction_hash="0xapprove1",
                block_number=10,
                block_hash="0xblock",
                status=1,
                from_address=OWNER,
                to_address=USDC.address,
                contract_address=None,
                transaction_index=0,
            ),
        )
        chain.get_allowance.return_value = MAX_UINT256

        assert await manager.get_state(amount, SPENDER) == ApprovalState.APPROVED

    async def test_unlimited_amount_when_estimate_succeeds(self, logger, tx_store):
        chain = _make_chain()
        manager = _make_manager(logger, chain, tx_store)

        await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER)

        chain.send_approve.assert_awaited_once_with(
            token=USDC.address, spender=SPENDER, amount=MAX_UINT256, gas_limit=72_000
        )

    async def test_exact_amount_when_unlimited_estimate_fails(self, logger, tx_store):
        chain = _make_chain()
        chain.estimate_approve_gas.side_effect = [RuntimeError("reverted"), 50_000]
        manager = _make_manager(logger, chain, tx_store)

        await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER)

        assert chain.estimate_approve_gas.await_args_list[1].kwargs["amount"] == 100
        chain.send_approve.assert_awaited_once_with(
            token=USDC.address, spender=SPENDER, amount=100, gas_limit=60_000
        )

    async def test_default_gas_limit_when_both_estimates_fail(self, logger, tx_store):
        chain = _make_chain()
        chain.estimate_approve_gas.side_effect = RuntimeError("reverted")
        manager = _make_manager(logger, chain, tx_store)

        await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER)

        assert chain.estimate_approve_gas.await_count == 2
        chain.send_approve.assert_awaited_once_with(
            token=USDC.address, spender=SPENDER, amount=100, gas_limit=180_000
        )

    async def test_confirmation_opens_before_send_and_closes_after(self, logger, tx_store):
        calls = []
        chain = _make_chain()

        async def send_approve(**kwargs):
            calls.append("send")
            return "0xapprove1"

        chain.send_approve.side_effect = send_approve
        manager = _make_manager(
            logger,
            chain,
            tx_store,
            open_confirmation=lambda message: calls.append(("open", message)),
            close_modals=lambda: calls.append("close"),
        )

        await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER)

        assert calls == [("open", "Approving USDC for trading"), "send", "close"]

    async def test_send_failure_propagates_and_closes(self, logger, tx_store):
        chain = _make_chain()
        chain.send_approve.side_effect = RuntimeError("user rejected")
        close_modals = MagicMock()
        manager = _make_manager(logger, chain, tx_store, close_modals=close_modals)

        with pytest.raises(RuntimeError, match="user rejected"):
            await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER)

        close_modals.assert_called_once_with()
        assert tx_store.all_transactions(CHAIN_ID) == {}

    async def test_unnecessary_approve_is_logged_and_skipped(self, logger, tx_store, caplog):
        chain = _make_chain(allowance=MAX_UINT256)
        manager = _make_manager(logger, chain, tx_store)

        with caplog.at_level("ERROR", logger="tradesync.tests"):
            result = await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER)

        assert result is None
        assert "approve was called unnecessarily" in caplog.text
        chain.send_approve.assert_not_awaited()

    async def test_pending_approval_blocks_second_approve(self, logger, tx_store):
        tx_store.add(
            CHAIN_ID,
            make_transaction(
                "0xapprove0",
                operation=ApprovalOperation(token_address=USDC.address, spender=SPENDER),
            ),
        )
        chain = _make_chain(allowance=0)
        manager = _make_manager(logger, chain, tx_store)

        assert await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER) is None
        chain.send_approve.assert_not_awaited()

    async def test_missing_owner_is_unknown(self, logger, tx_store):
        chain = _make_chain()
        manager = _make_manager(logger, chain, tx_store, owner=None)

        assert await manager.approve(TokenAmount(token=USDC, raw=100), SPENDER) is None
        chain.send_approve.assert_not_awaited()
