from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address

from tradesync.state.types import SignedOrder, SigningScheme, UnsignedOrder

DOMAIN_NAME = "Gnosis Protocol"
DOMAIN_VERSION = "v2"

ORDER_TYPE_FIELDS = [
    {"name": "sellToken", "type": "address"},
    {"name": "buyToken", "type": "address"},
    {"name": "receiver", "type": "address"},
    {"name": "sellAmount", "type": "uint256"},
    {"name": "buyAmount", "type": "uint256"},
    {"name": "validTo", "type": "uint32"},
    {"name": "appData", "type": "bytes32"},
    {"name": "feeAmount", "type": "uint256"},
    {"name": "kind", "type": "string"},
    {"name": "partiallyFillable", "type": "bool"},
    {"name": "sellTokenBalance", "type": "string"},
    {"name": "buyTokenBalance", "type": "string"},
]


class OrderSigner:
    def __init__(self, *, chain_id: int, settlement_contract: str, private_key: str | None = None) -> None:
        self._chain_id = chain_id
        self._settlement_contract = to_checksum_address(settlement_contract)
        self._account = Account.from_key(private_key) if private_key else None

    def typed_data(self, order: UnsignedOrder) -> dict[str, Any]:
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "Order": ORDER_TYPE_FIELDS,
            },
            "primaryType": "Order",
            "domain": {
                "name": DOMAIN_NAME,
                "version": DOMAIN_VERSION,
                "chainId": self._chain_id,
                "verifyingContract": self._settlement_contract,
            },
            "message": {
                "sellToken": to_checksum_address(order.sell_token),
                "buyToken": to_checksum_address(order.buy_token),
                "receiver": to_checksum_address(order.receiver),
                "sellAmount": order.sell_amount,
                "buyAmount": order.buy_amount,
                "validTo": order.valid_to,
                "appData": bytes.fromhex(order.app_data.removeprefix("0x")),
                "feeAmount": order.fee_amount,
                "kind": order.kind.value,
                "partiallyFillable": order.partially_fillable,
                "sellTokenBalance": order.sell_token_balance,
                "buyTokenBalance": order.buy_token_balance,
            },
        }

    def sign(self, order: UnsignedOrder, *, owner: str, scheme: SigningScheme = SigningScheme.EIP712) -> SignedOrder:
        if scheme == SigningScheme.PRESIGN:
            # the on-chain presignature authorises the order; the owner stands in for the signature
            return SignedOrder(order=order, signature=owner, signing_scheme=scheme, owner=owner)

        if scheme != SigningScheme.EIP712:
            raise ValueError(f"Unsupported signing scheme: {scheme.value}")
        if self._account is None:
            raise RuntimeError("PRIVATE_KEY is required to sign orders.")
        if self._account.address.lower() != owner.lower():
            raise ValueError(f"Signer {self._account.address} does not match order owner {owner}")

        signable = encode_typed_data(full_message=self.typed_data(order))
        signed = self._account.sign_message(signable)
        return SignedOrder(
            order=order,
            signature="0x" + bytes(signed.signature).hex(),
            signing_scheme=scheme,
            owner=owner,
        )
