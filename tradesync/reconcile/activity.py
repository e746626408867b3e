from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from tradesync.state.orders import OrderStore
from tradesync.state.transactions import TransactionStore
from tradesync.state.types import HashType, Order, OrderStatus, Transaction

BLOCK_EXPLORER_URLS = {
    1: "https://etherscan.io",
    4: "https://rinkeby.etherscan.io",
    5: "https://goerli.etherscan.io",
    100: "https://gnosisscan.io",
    11155111: "https://sepolia.etherscan.io",
}

MULTISIG_APP_URLS = {
    1: "https://gnosis-safe.io/app",
    4: "https://rinkeby.gnosis-safe.io/app",
    5: "https://gnosis-safe.io/app",
    100: "https://xdai.gnosis-safe.io/app",
}

ORDER_EXPLORER_URLS = {
    1: "https://explorer.cow.fi",
    4: "https://explorer.cow.fi/rinkeby",
    5: "https://explorer.cow.fi/goerli",
    100: "https://explorer.cow.fi/xdai",
    11155111: "https://explorer.cow.fi/sepolia",
}


class ActivityType(str, Enum):
    TX = "tx"
    ORDER = "order"


class ActivityStatus(str, Enum):
    PENDING = "pending"
    PRESIGNATURE_PENDING = "presignature_pending"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"


ORDER_ACTIVITY_STATUS = {
    OrderStatus.PENDING: ActivityStatus.PENDING,
    OrderStatus.PRESIGNATURE_PENDING: ActivityStatus.PRESIGNATURE_PENDING,
    OrderStatus.CONFIRMED: ActivityStatus.CONFIRMED,
    OrderStatus.EXPIRED: ActivityStatus.EXPIRED,
    OrderStatus.CANCELLING: ActivityStatus.CANCELLING,
    OrderStatus.CANCELLED: ActivityStatus.CANCELLED,
}

Activity = Union[Transaction, Order]


@dataclass(slots=True, frozen=True)
class ActivityDescriptor:
    activity: Activity
    status: ActivityStatus
    type: ActivityType
    summary: str | None = None


@dataclass(slots=True, frozen=True)
class ActivityDerivedState:
    id: str
    status: ActivityStatus
    type: ActivityType
    summary: str | None
    activity_link_url: str | None

    is_transaction: bool
    is_order: bool
    is_pending: bool
    is_presignature_pending: bool
    is_confirmed: bool
    is_expired: bool
    is_cancelling: bool
    is_cancelled: bool
    is_cancellable: bool
    is_unfillable: bool

    transaction: Transaction | None = None
    order: Order | None = None


def get_activity_descriptor(
    chain_id: int | None,
    activity_id: str,
    *,
    tx_store: TransactionStore,
    order_store: OrderStore,
) -> ActivityDescriptor | None:
    if chain_id is None:
        return None

    tx = tx_store.get(chain_id, activity_id)
    if tx is not None:
        return ActivityDescriptor(
            activity=tx,
            status=ActivityStatus.PENDING if tx.is_pending else ActivityStatus.CONFIRMED,
            type=ActivityType.TX,
            summary=tx.summary,
        )

    order = order_store.get(chain_id, activity_id)
    if order is not None:
        return ActivityDescriptor(
            activity=order,
            status=ORDER_ACTIVITY_STATUS[order.status],
            type=ActivityType.ORDER,
            summary=order.summary,
        )
    return None


def get_activity_link_url(
    chain_id: int,
    activity_id: str,
    *,
    transaction: Transaction | None = None,
    order: Order | None = None,
) -> str | None:
    if transaction is not None:
        if transaction.transaction_hash or transaction.hash_type == HashType.ETHEREUM_TX:
            base = BLOCK_EXPLORER_URLS.get(chain_id)
            tx_hash = transaction.chain_hash
            return f"{base}/tx/{tx_hash}" if base and tx_hash else None

        base = MULTISIG_APP_URLS.get(chain_id)
        if base and transaction.from_address:
            return f"{base}/#/safes/{transaction.from_address}/transactions"
        return None

    if order is not None:
        base = ORDER_EXPLORER_URLS.get(chain_id)
        return f"{base}/orders/{activity_id}" if base else None
    return None


def get_activity_derived_state(
    chain_id: int | None,
    activity_id: str,
    descriptor: ActivityDescriptor | None,
    *,
    allows_offchain_signing: bool,
) -> ActivityDerivedState | None:
    if descriptor is None or chain_id is None:
        return None

    status = descriptor.status
    is_transaction = descriptor.type == ActivityType.TX
    is_order = descriptor.type == ActivityType.ORDER
    order = descriptor.activity if isinstance(descriptor.activity, Order) else None
    transaction = descriptor.activity if isinstance(descriptor.activity, Transaction) else None

    is_pending = status == ActivityStatus.PENDING
    is_cancellable = allows_offchain_signing and is_pending and is_order

    return ActivityDerivedState(
        id=activity_id,
        status=status,
        type=descriptor.type,
        summary=descriptor.summary,
        activity_link_url=get_activity_link_url(
            chain_id,
            activity_id,
            transaction=transaction,
            order=order,
        ),
        is_transaction=is_transaction,
        is_order=is_order,
        is_pending=is_pending,
        is_presignature_pending=status == ActivityStatus.PRESIGNATURE_PENDING,
        is_confirmed=status == ActivityStatus.CONFIRMED,
        is_expired=status == ActivityStatus.EXPIRED,
        is_cancelling=status == ActivityStatus.CANCELLING,
        is_cancelled=status == ActivityStatus.CANCELLED,
        is_cancellable=is_cancellable,
        is_unfillable=is_cancellable and order is not None and order.is_unfillable,
        transaction=transaction,
        order=order,
    )
