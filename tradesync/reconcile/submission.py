from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Protocol

from eth_utils import is_address, to_checksum_address

from tradesync.common import log_event, now_iso
from tradesync.state.orders import OrderStore
from tradesync.state.types import (
    Order,
    OrderKind,
    OrderStatus,
    SignedOrder,
    SigningScheme,
    TokenAmount,
    UnsignedOrder,
)

SHORTEST_PRECISION = 6


class OrderSigningBackend(Protocol):
    def sign(self, order: UnsignedOrder, *, owner: str, scheme: SigningScheme) -> SignedOrder:
        ...


class OrderSubmitter(Protocol):
    async def submit_order(self, chain_id: int, signed_order: SignedOrder) -> str:
        ...


@dataclass(slots=True, frozen=True)
class SwapIntent:
    chain_id: int
    account: str
    kind: OrderKind
    input_amount: TokenAmount
    output_amount: TokenAmount
    valid_to: int
    recipient: str
    fee_amount: TokenAmount | None = None
    recipient_address_or_name: str | None = None
    signing_scheme: SigningScheme = SigningScheme.EIP712


def to_significant(raw: int, decimals: int, digits: int = SHORTEST_PRECISION) -> str:
    value = Decimal(raw).scaleb(-decimals)
    if value == 0:
        return "0"
    with localcontext() as ctx:
        ctx.prec = digits
        ctx.rounding = ROUND_HALF_UP
        rounded = +value
    return format(rounded.normalize(), "f")


def shorten_address(address: str, chars: int = 4) -> str:
    if not is_address(address):
        raise ValueError(f"Invalid address: {address}")
    checksummed = to_checksum_address(address)
    return f"{checksummed[:chars + 2]}...{checksummed[-chars:]}"


def encode_app_data(app_id: int) -> str:
    return "0x" + format(app_id, "x").rjust(64, "0")


def build_summary(intent: SwapIntent) -> str:
    input_quantifier = "at most" if intent.kind == OrderKind.BUY else ""
    output_quantifier = "at least" if intent.kind == OrderKind.SELL else ""

    input_raw = intent.input_amount.raw
    if intent.fee_amount is not None:
        input_raw += intent.fee_amount.raw
    input_value = to_significant(input_raw, intent.input_amount.token.decimals)
    output_value = to_significant(intent.output_amount.raw, intent.output_amount.token.decimals)

    parts = [
        "Swap",
        input_quantifier,
        input_value,
        intent.input_amount.token.symbol,
        "for",
        output_quantifier,
        output_value,
        intent.output_amount.token.symbol,
    ]
    summary = " ".join(part for part in parts if part)
    if intent.recipient.lower() == intent.account.lower():
        return summary

    target = intent.recipient_address_or_name or intent.recipient
    if is_address(target):
        target = shorten_address(target)
    return f"{summary} to {target}"


def build_unsigned_order(intent: SwapIntent, *, app_data: str) -> UnsignedOrder:
    return UnsignedOrder(
        sell_token=intent.input_amount.token.address,
        buy_token=intent.output_amount.token.address,
        receiver=intent.recipient,
        sell_amount=intent.input_amount.raw,
        buy_amount=intent.output_amount.raw,
        valid_to=intent.valid_to,
        app_data=app_data,
        fee_amount=intent.fee_amount.raw if intent.fee_amount is not None else 0,
        kind=intent.kind,
        partially_fillable=False,
    )


class OrderSubmissionPipeline:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        order_store: OrderStore,
        signer: OrderSigningBackend,
        submitter: OrderSubmitter,
        app_id: int,
    ) -> None:
        self._logger = logger
        self._order_store = order_store
        self._signer = signer
        self._submitter = submitter
        self._app_data = encode_app_data(app_id)

    async def post_order(self, intent: SwapIntent) -> str:
        summary = build_summary(intent)
        unsigned = build_unsigned_order(intent, app_data=self._app_data)

        signed = self._signer.sign(unsigned, owner=intent.account, scheme=intent.signing_scheme)
        order_id = await self._submitter.submit_order(intent.chain_id, signed)

        status = (
            OrderStatus.PRESIGNATURE_PENDING
            if signed.signing_scheme == SigningScheme.PRESIGN
            else OrderStatus.PENDING
        )
        self._order_store.add_pending_order(
            intent.chain_id,
            Order(
                id=order_id,
                owner=intent.account,
                kind=unsigned.kind,
                sell_token=unsigned.sell_token,
                buy_token=unsigned.buy_token,
                sell_amount=unsigned.sell_amount,
                buy_amount=unsigned.buy_amount,
                fee_amount=unsigned.fee_amount,
                valid_to=unsigned.valid_to,
                receiver=unsigned.receiver,
                signature=signed.signature,
                signing_scheme=signed.signing_scheme,
                creation_time=now_iso(),
                status=status,
                app_data=unsigned.app_data,
                input_token=intent.input_amount.token,
                output_token=intent.output_amount.token,
                summary=summary,
                partially_fillable=unsigned.partially_fillable,
            ),
        )
        log_event(
            self._logger,
            level="info",
            event="order_posted",
            message="Order signed, submitted and tracked",
            chain_id=intent.chain_id,
            order_id=order_id,
            status=status.value,
            summary=summary,
        )
        return order_id
