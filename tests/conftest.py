"""Shared test fixtures and fakes for external collaborators."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

import pytest

from tradesync.clients.mempool import CONFIRMED_EVENT, SPEED_UP_EVENT, MempoolEvent
from tradesync.clients.quotes import PriceInformation, QuoteParams
from tradesync.state import (
    HashType,
    Order,
    OrderKind,
    OrderStatus,
    OrderStore,
    SigningScheme,
    Token,
    Transaction,
    TransactionStore,
)

CHAIN_ID = 1
OWNER = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
OWNER_PRIVATE_KEY = "0x4f3edf983ac636a65a842ce7c78d9aa706d3b113bce9c46f30d7d21715b23b1d"
RECEIVER = "0xFFcf8FDEE72ac11b5c542428B35EEF5769C409f0"
SPENDER = "0xC92E8bdf79f0507f65a392b0ab4667716BFE0110"
SETTLEMENT = "0x9008D19f58AAbD9eD0D60971565AA8510560ab41"

WETH = Token(
    chain_id=CHAIN_ID,
    address="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    decimals=18,
    symbol="WETH",
    name="Wrapped Ether",
)
USDC = Token(
    chain_id=CHAIN_ID,
    address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    decimals=6,
    symbol="USDC",
    name="USD Coin",
)


def make_transaction(tx_hash: str = "0xaaa1", **overrides: Any) -> Transaction:
    tx = Transaction(
        hash=tx_hash,
        hash_type=HashType.ETHEREUM_TX,
        from_address=OWNER,
        added_time=1_700_000_000_000,
        summary="Approve USDC",
    )
    return replace(tx, **overrides)


def make_order(order_id: str = "order-1", **overrides: Any) -> Order:
    order = Order(
        id=order_id,
        owner=OWNER,
        kind=OrderKind.SELL,
        sell_token=WETH.address,
        buy_token=USDC.address,
        sell_amount=1000,
        buy_amount=2000,
        fee_amount=10,
        valid_to=2_000_000_000,
        receiver=OWNER,
        signature="0xsig",
        signing_scheme=SigningScheme.EIP712,
        creation_time="2024-01-01T00:00:00+00:00",
        status=OrderStatus.PENDING,
        app_data="0x" + "0" * 64,
        input_token=WETH,
        output_token=USDC,
        summary="Swap 0.000000000000001 WETH for at least 0.002 USDC",
    )
    return replace(order, **overrides)


async def wait_until(condition: Any, timeout_seconds: float = 1.0) -> None:
    async def poll() -> None:
        while not condition():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout_seconds)


class FakeSubscription:
    def __init__(self, tx_hash: str) -> None:
        self.hash = tx_hash
        self.handlers: dict[str, list[Any]] = {}
        self.unsubscribed = False
        self.fail_unsubscribe = False

    def on_speed_up(self, handler: Any) -> None:
        self.handlers.setdefault(SPEED_UP_EVENT, []).append(handler)

    def on_confirmed(self, handler: Any) -> None:
        self.handlers.setdefault(CONFIRMED_EVENT, []).append(handler)

    async def unsubscribe(self) -> None:
        if self.fail_unsubscribe:
            raise RuntimeError("unsubscribe failed")
        self.unsubscribed = True

    def emit(self, event_code: str, new_hash: str | None) -> None:
        event = MempoolEvent(watched_hash=self.hash, event_code=event_code, hash=new_hash)
        for handler in self.handlers.get(event_code, []):
            handler(event)

    def speed_up(self, new_hash: str) -> None:
        self.emit(SPEED_UP_EVENT, new_hash)

    def confirmed(self, confirmed_hash: str) -> None:
        self.emit(CONFIRMED_EVENT, confirmed_hash)


class FakeMempool:
    def __init__(self) -> None:
        self.subscriptions: dict[str, FakeSubscription] = {}
        self.failing: set[str] = set()
        self.subscribe_calls: list[str] = []

    async def subscribe(self, tx_hash: str) -> FakeSubscription:
        self.subscribe_calls.append(tx_hash)
        if tx_hash in self.failing:
            raise ConnectionError(f"cannot watch {tx_hash}")
        subscription = FakeSubscription(tx_hash)
        self.subscriptions[tx_hash] = subscription
        return subscription


class FakeQuotes:
    """Returns a configured amount per base token, or raises when given an exception."""

    def __init__(self) -> None:
        self.amounts: dict[str, Any] = {}
        self.calls: list[QuoteParams] = []

    async def get_best_quote(self, params: QuoteParams) -> PriceInformation:
        self.calls.append(params)
        result = self.amounts.get(params.base_token)
        if isinstance(result, Exception):
            raise result
        return PriceInformation(token=params.quote_token, amount=result)


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tradesync.tests")


@pytest.fixture
def tx_store(logger: logging.Logger) -> TransactionStore:
    return TransactionStore(logger)


@pytest.fixture
def order_store(logger: logging.Logger) -> OrderStore:
    return OrderStore(logger)


@pytest.fixture
def mempool() -> FakeMempool:
    return FakeMempool()


@pytest.fixture
def quotes() -> FakeQuotes:
    return FakeQuotes()
