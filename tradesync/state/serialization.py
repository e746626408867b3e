from __future__ import annotations

from dataclasses import asdict
from typing import Any

from .types import (
    ApprovalOperation,
    HashType,
    Order,
    OrderKind,
    OrderStatus,
    PresignOperation,
    SigningScheme,
    Token,
    Transaction,
    TransactionOperation,
    TransactionReceipt,
    parse_quantity,
)


def _operation_to_dict(operation: TransactionOperation) -> dict[str, Any] | None:
    if isinstance(operation, ApprovalOperation):
        return {"type": "approval", "token_address": operation.token_address, "spender": operation.spender}
    if isinstance(operation, PresignOperation):
        return {"type": "presign", "order_id": operation.order_id}
    return None


def _operation_from_dict(payload: Any) -> TransactionOperation:
    if not isinstance(payload, dict):
        return None
    kind = payload.get("type")
    if kind == "approval":
        return ApprovalOperation(
            token_address=str(payload.get("token_address") or ""),
            spender=str(payload.get("spender") or ""),
        )
    if kind == "presign":
        return PresignOperation(order_id=str(payload.get("order_id") or ""))
    return None


def transaction_to_dict(tx: Transaction) -> dict[str, Any]:
    return {
        "hash": tx.hash,
        "hash_type": tx.hash_type.value,
        "from_address": tx.from_address,
        "added_time": tx.added_time,
        "summary": tx.summary,
        "transaction_hash": tx.transaction_hash,
        "last_checked_block_number": tx.last_checked_block_number,
        "confirmed_time": tx.confirmed_time,
        "receipt": asdict(tx.receipt) if tx.receipt is not None else None,
        "operation": _operation_to_dict(tx.operation),
    }


def transaction_from_dict(payload: dict[str, Any]) -> Transaction:
    raw_receipt = payload.get("receipt")
    receipt = TransactionReceipt(**raw_receipt) if isinstance(raw_receipt, dict) else None
    return Transaction(
        hash=str(payload["hash"]),
        hash_type=HashType(payload.get("hash_type") or HashType.ETHEREUM_TX.value),
        from_address=str(payload.get("from_address") or ""),
        added_time=parse_quantity(payload.get("added_time"), 0) or 0,
        summary=payload.get("summary"),
        transaction_hash=payload.get("transaction_hash"),
        last_checked_block_number=parse_quantity(payload.get("last_checked_block_number")),
        confirmed_time=parse_quantity(payload.get("confirmed_time")),
        receipt=receipt,
        operation=_operation_from_dict(payload.get("operation")),
    )


def token_to_dict(token: Token) -> dict[str, Any]:
    return asdict(token)


def token_from_dict(payload: dict[str, Any]) -> Token:
    return Token(
        chain_id=parse_quantity(payload.get("chain_id"), 0) or 0,
        address=str(payload.get("address") or ""),
        decimals=parse_quantity(payload.get("decimals"), 18) or 0,
        symbol=str(payload.get("symbol") or ""),
        name=payload.get("name"),
    )


def order_to_dict(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "owner": order.owner,
        "kind": order.kind.value,
        "sell_token": order.sell_token,
        "buy_token": order.buy_token,
        "sell_amount": str(order.sell_amount),
        "buy_amount": str(order.buy_amount),
        "fee_amount": str(order.fee_amount),
        "valid_to": order.valid_to,
        "receiver": order.receiver,
        "signature": order.signature,
        "signing_scheme": order.signing_scheme.value,
        "creation_time": order.creation_time,
        "status": order.status.value,
        "app_data": order.app_data,
        "input_token": token_to_dict(order.input_token),
        "output_token": token_to_dict(order.output_token),
        "summary": order.summary,
        "partially_fillable": order.partially_fillable,
    }


def order_from_dict(payload: dict[str, Any]) -> Order:
    # is_unfillable is recomputed by the poller after a restart
    return Order(
        id=str(payload["id"]),
        owner=str(payload.get("owner") or ""),
        kind=OrderKind(payload["kind"]),
        sell_token=str(payload.get("sell_token") or ""),
        buy_token=str(payload.get("buy_token") or ""),
        sell_amount=parse_quantity(payload.get("sell_amount"), 0) or 0,
        buy_amount=parse_quantity(payload.get("buy_amount"), 0) or 0,
        fee_amount=parse_quantity(payload.get("fee_amount"), 0) or 0,
        valid_to=parse_quantity(payload.get("valid_to"), 0) or 0,
        receiver=str(payload.get("receiver") or ""),
        signature=str(payload.get("signature") or ""),
        signing_scheme=SigningScheme(payload.get("signing_scheme") or SigningScheme.EIP712.value),
        creation_time=str(payload.get("creation_time") or ""),
        status=OrderStatus(payload.get("status") or OrderStatus.PENDING.value),
        app_data=str(payload.get("app_data") or ""),
        input_token=token_from_dict(payload.get("input_token") or {}),
        output_token=token_from_dict(payload.get("output_token") or {}),
        summary=payload.get("summary"),
        partially_fillable=bool(payload.get("partially_fillable", False)),
    )
