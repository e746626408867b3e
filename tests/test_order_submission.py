"""Tests for order summaries, signing and the submission pipeline."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from tests.conftest import CHAIN_ID, OWNER, OWNER_PRIVATE_KEY, RECEIVER, SETTLEMENT, USDC, WETH
from tradesync.clients.signing import OrderSigner
from tradesync.reconcile import OrderSubmissionPipeline, SwapIntent, build_summary, build_unsigned_order
from tradesync.reconcile.submission import encode_app_data, shorten_address, to_significant
from tradesync.state import OrderKind, OrderStatus, SigningScheme, TokenAmount


def _make_intent(**overrides) -> SwapIntent:
    params = {
        "chain_id": CHAIN_ID,
        "account": OWNER,
        "kind": OrderKind.SELL,
        "input_amount": TokenAmount(token=WETH, raw=10**18),
        "output_amount": TokenAmount(token=USDC, raw=2_000 * 10**6),
        "valid_to": 1_900_000_000,
        "recipient": OWNER,
        "fee_amount": TokenAmount(token=WETH, raw=5 * 10**15),
    }
    params.update(overrides)
    return SwapIntent(**params)


def _make_pipeline(logger, order_store, *, submitter=None, app_id: int = 7) -> OrderSubmissionPipeline:
    if submitter is None:
        submitter = AsyncMock()
        submitter.submit_order.return_value = "order-uid-1"
    signer = OrderSigner(chain_id=CHAIN_ID, settlement_contract=SETTLEMENT, private_key=OWNER_PRIVATE_KEY)
    return OrderSubmissionPipeline(
        logger=logger,
        order_store=order_store,
        signer=signer,
        submitter=submitter,
        app_id=app_id,
    )


class TestFormatting:
    def test_to_significant(self):
        assert to_significant(1_234_567, 6) == "1.23457"
        assert to_significant(2_000 * 10**6, 6) == "2000"
        assert to_significant(0, 18) == "0"
        assert to_significant(10**18 + 5 * 10**15, 18) == "1.005"

    def test_shorten_address(self):
        assert shorten_address(RECEIVER.lower()) == "0xFFcf...09f0"

        with pytest.raises(ValueError):
            shorten_address("not-an-address")

    def test_encode_app_data(self):
        assert encode_app_data(0) == "0x" + "0" * 64
        assert encode_app_data(255) == "0x" + "0" * 62 + "ff"


class TestBuildSummary:
    def test_sell_summary_includes_fee_in_input(self):
        assert build_summary(_make_intent()) == "Swap 1.005 WETH for at least 2000 USDC"

    def test_buy_summary_quantifies_input(self):
        summary = build_summary(_make_intent(kind=OrderKind.BUY))

        assert summary == "Swap at most 1.005 WETH for 2000 USDC"

    def test_recipient_address_is_shortened(self):
        summary = build_summary(_make_intent(recipient=RECEIVER))

        assert summary.endswith(" to 0xFFcf...09f0")

    def test_recipient_name_is_used_verbatim(self):
        summary = build_summary(
            _make_intent(recipient=RECEIVER, recipient_address_or_name="friend.eth")
        )

        assert summary == "Swap 1.005 WETH for at least 2000 USDC to friend.eth"

    def test_recipient_comparison_ignores_case(self):
        summary = build_summary(_make_intent(recipient=OWNER.lower()))

        assert " to " not in summary


class TestBuildUnsignedOrder:
    def test_order_fields(self):
        order = build_unsigned_order(_make_intent(), app_data=encode_app_data(7))

        assert order.partially_fillable is False
        assert order.sell_token == WETH.address
        assert order.buy_token == USDC.address
        assert order.sell_amount == 10**18
        assert order.fee_amount == 5 * 10**15
        assert order.to_api_payload()["sellAmount"] == str(10**18)
        assert order.to_api_payload()["partiallyFillable"] is False

    def test_missing_fee_is_zero(self):
        order = build_unsigned_order(_make_intent(fee_amount=None), app_data=encode_app_data(0))

        assert order.fee_amount == 0


class TestOrderSigner:
    def test_eip712_signature_recovers_owner(self):
        signer = OrderSigner(chain_id=CHAIN_ID, settlement_contract=SETTLEMENT, private_key=OWNER_PRIVATE_KEY)
        order = build_unsigned_order(_make_intent(), app_data=encode_app_data(7))

        signed = signer.sign(order, owner=OWNER, scheme=SigningScheme.EIP712)

        signable = encode_typed_data(full_message=signer.typed_data(order))
        assert Account.recover_message(signable, signature=signed.signature) == OWNER
        assert signed.to_api_payload()["signingScheme"] == "eip712"

    def test_presign_uses_owner_as_signature(self):
        signer = OrderSigner(chain_id=CHAIN_ID, settlement_contract=SETTLEMENT)
        order = build_unsigned_order(_make_intent(), app_data=encode_app_data(7))

        signed = signer.sign(order, owner=OWNER, scheme=SigningScheme.PRESIGN)

        assert signed.signature == OWNER

    def test_owner_mismatch_is_rejected(self):
        signer = OrderSigner(chain_id=CHAIN_ID, settlement_contract=SETTLEMENT, private_key=OWNER_PRIVATE_KEY)
        order = build_unsigned_order(_make_intent(), app_data=encode_app_data(7))

        with pytest.raises(ValueError):
            signer.sign(order, owner=RECEIVER, scheme=SigningScheme.EIP712)


class TestPostOrder:
    async def test_signed_order_is_submitted_and_tracked(self, logger, order_store):
        submitter = AsyncMock()
        submitter.submit_order.return_value = "order-uid-1"
        pipeline = _make_pipeline(logger, order_store, submitter=submitter)

        order_id = await pipeline.post_order(_make_intent())

        assert order_id == "order-uid-1"
        chain_id, signed = submitter.submit_order.await_args.args
        assert chain_id == CHAIN_ID
        assert signed.order.app_data == encode_app_data(7)
        assert signed.order.partially_fillable is False

        order = order_store.get(CHAIN_ID, "order-uid-1")
        assert order.status == OrderStatus.PENDING
        assert order.summary == "Swap 1.005 WETH for at least 2000 USDC"
        assert order.signature == signed.signature
        assert order.input_token == WETH
        assert order.output_token == USDC
        assert order.is_unfillable is False

    async def test_presign_order_waits_for_presignature(self, logger, order_store):
        pipeline = _make_pipeline(logger, order_store)

        order_id = await pipeline.post_order(_make_intent(signing_scheme=SigningScheme.PRESIGN))

        assert order_store.get(CHAIN_ID, order_id).status == OrderStatus.PRESIGNATURE_PENDING

    async def test_submission_failure_tracks_nothing(self, logger, order_store):
        submitter = AsyncMock()
        submitter.submit_order.side_effect = RuntimeError("InsufficientFee")
        pipeline = _make_pipeline(logger, order_store, submitter=submitter)

        with pytest.raises(RuntimeError, match="InsufficientFee"):
            await pipeline.post_order(_make_intent())

        assert order_store.all_orders(CHAIN_ID) == {}
