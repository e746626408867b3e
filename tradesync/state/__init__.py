from .orders import DuplicateOrderError, OrderStore
from .transactions import DuplicateTransactionError, TransactionStore
from .types import (
    NATIVE_TOKEN_ADDRESS,
    PENDING_ORDER_STATUSES,
    ApprovalOperation,
    HashType,
    Order,
    OrderKind,
    OrderStatus,
    PresignOperation,
    SignedOrder,
    SigningScheme,
    Token,
    TokenAmount,
    Transaction,
    TransactionReceipt,
    UnsignedOrder,
)

__all__ = [
    "NATIVE_TOKEN_ADDRESS",
    "PENDING_ORDER_STATUSES",
    "ApprovalOperation",
    "DuplicateOrderError",
    "DuplicateTransactionError",
    "HashType",
    "Order",
    "OrderKind",
    "OrderStatus",
    "OrderStore",
    "PresignOperation",
    "SignedOrder",
    "SigningScheme",
    "Token",
    "TokenAmount",
    "Transaction",
    "TransactionReceipt",
    "TransactionStore",
    "UnsignedOrder",
]
