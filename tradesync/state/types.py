from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


def parse_quantity(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    except ValueError:
        return default


class HashType(str, Enum):
    ETHEREUM_TX = "ethereum_tx"
    MULTISIG_TX = "multisig_tx"


class OrderKind(str, Enum):
    SELL = "sell"
    BUY = "buy"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PRESIGNATURE_PENDING = "presignature_pending"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"


class SigningScheme(str, Enum):
    EIP712 = "eip712"
    ETHSIGN = "ethsign"
    PRESIGN = "presign"


PENDING_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PRESIGNATURE_PENDING})


@dataclass(slots=True, frozen=True)
class Token:
    chain_id: int
    address: str
    decimals: int
    symbol: str
    name: str | None = None

    @property
    def is_native(self) -> bool:
        return self.address.lower() == NATIVE_TOKEN_ADDRESS.lower()


@dataclass(slots=True, frozen=True)
class TokenAmount:
    token: Token
    raw: int


@dataclass(slots=True, frozen=True)
class ApprovalOperation:
    token_address: str
    spender: str


@dataclass(slots=True, frozen=True)
class PresignOperation:
    order_id: str


TransactionOperation = Union[ApprovalOperation, PresignOperation, None]


@dataclass(slots=True, frozen=True)
class TransactionReceipt:
    transaction_hash: str
    block_number: int
    block_hash: str
    status: int | None
    from_address: str
    to_address: str | None
    contract_address: str | None
    transaction_index: int
    gas_used: int | None = None

    @classmethod
    def from_rpc(cls, payload: dict[str, Any]) -> "TransactionReceipt":
        return cls(
            transaction_hash=str(payload.get("transactionHash") or ""),
            block_number=parse_quantity(payload.get("blockNumber"), 0) or 0,
            block_hash=str(payload.get("blockHash") or ""),
            status=parse_quantity(payload.get("status")),
            from_address=str(payload.get("from") or ""),
            to_address=payload.get("to") or None,
            contract_address=payload.get("contractAddress") or None,
            transaction_index=parse_quantity(payload.get("transactionIndex"), 0) or 0,
            gas_used=parse_quantity(payload.get("gasUsed")),
        )


@dataclass(slots=True, frozen=True)
class Transaction:
    hash: str
    hash_type: HashType
    from_address: str
    added_time: int
    summary: str | None = None
    transaction_hash: str | None = None
    last_checked_block_number: int | None = None
    confirmed_time: int | None = None
    receipt: TransactionReceipt | None = None
    operation: TransactionOperation = None

    @property
    def is_pending(self) -> bool:
        return self.receipt is None

    @property
    def chain_hash(self) -> str | None:
        if self.transaction_hash:
            return self.transaction_hash
        if self.hash_type == HashType.ETHEREUM_TX:
            return self.hash
        return None


@dataclass(slots=True, frozen=True)
class UnsignedOrder:
    sell_token: str
    buy_token: str
    receiver: str
    sell_amount: int
    buy_amount: int
    valid_to: int
    app_data: str
    fee_amount: int
    kind: OrderKind
    partially_fillable: bool = False
    sell_token_balance: str = "erc20"
    buy_token_balance: str = "erc20"

    def to_api_payload(self) -> dict[str, Any]:
        return {
            "sellToken": self.sell_token,
            "buyToken": self.buy_token,
            "receiver": self.receiver,
            "sellAmount": str(self.sell_amount),
            "buyAmount": str(self.buy_amount),
            "validTo": self.valid_to,
            "appData": self.app_data,
            "feeAmount": str(self.fee_amount),
            "kind": self.kind.value,
            "partiallyFillable": self.partially_fillable,
            "sellTokenBalance": self.sell_token_balance,
            "buyTokenBalance": self.buy_token_balance,
        }


@dataclass(slots=True, frozen=True)
class SignedOrder:
    order: UnsignedOrder
    signature: str
    signing_scheme: SigningScheme
    owner: str

    def to_api_payload(self) -> dict[str, Any]:
        payload = self.order.to_api_payload()
        payload["signature"] = self.signature
        payload["signingScheme"] = self.signing_scheme.value
        payload["from"] = self.owner
        return payload


@dataclass(slots=True, frozen=True)
class Order:
    id: str
    owner: str
    kind: OrderKind
    sell_token: str
    buy_token: str
    sell_amount: int
    buy_amount: int
    fee_amount: int
    valid_to: int
    receiver: str
    signature: str
    signing_scheme: SigningScheme
    creation_time: str
    status: OrderStatus
    app_data: str
    input_token: Token
    output_token: Token
    summary: str | None = None
    partially_fillable: bool = False
    is_unfillable: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_ORDER_STATUSES
