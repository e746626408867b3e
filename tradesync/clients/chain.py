from __future__ import annotations

import logging
from typing import Any

import aiohttp
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from tradesync.common import log_event
from tradesync.state.types import TransactionReceipt, parse_quantity

MAX_UINT256 = 2**256 - 1

APPROVE_SELECTOR = function_signature_to_4byte_selector("approve(address,uint256)")
ALLOWANCE_SELECTOR = function_signature_to_4byte_selector("allowance(address,address)")


class RpcMethodError(RuntimeError):
    def __init__(self, message: str, *, method: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.method = method
        self.code = code
        self.data = data


def encode_approve_call(spender: str, amount: int) -> str:
    encoded = abi_encode(["address", "uint256"], [to_checksum_address(spender), int(amount)])
    return "0x" + (APPROVE_SELECTOR + encoded).hex()


def encode_allowance_call(owner: str, spender: str) -> str:
    encoded = abi_encode(["address", "address"], [to_checksum_address(owner), to_checksum_address(spender)])
    return "0x" + (ALLOWANCE_SELECTOR + encoded).hex()


class ChainRpcClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc_url: str,
        chain_id: int,
        private_key: str | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._logger = logger
        self._rpc_url = rpc_url
        self._chain_id = chain_id
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._account = Account.from_key(private_key) if private_key else None
        self._http_session: aiohttp.ClientSession | None = None
        self._request_id = 0

    @property
    def address(self) -> str | None:
        if self._account is None:
            return None
        return self._account.address

    async def connect(self) -> None:
        if self._http_session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._http_session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def healthcheck(self) -> None:
        remote_chain_id = parse_quantity(await self._rpc_call("eth_chainId"))
        if remote_chain_id != self._chain_id:
            raise RuntimeError(
                f"RPC endpoint serves chain {remote_chain_id}, expected {self._chain_id}"
            )
        log_event(
            self._logger,
            level="info",
            event="chain_rpc_ready",
            message="Chain RPC endpoint is reachable",
            chain_id=self._chain_id,
            rpc_url=self._rpc_url,
        )

    async def _rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        if self._http_session is None:
            await self.connect()
        if self._http_session is None:
            raise RuntimeError("RPC HTTP session is not initialized.")

        self._request_id += 1
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        async with self._http_session.post(self._rpc_url, json=payload) as response:
            body = await response.json(content_type=None)
            if response.status >= 400:
                raise RuntimeError(f"RPC call failed: method={method} status={response.status} body={body}")

        if not isinstance(body, dict):
            raise RuntimeError(f"Invalid RPC response for {method}: {body}")

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                raise RpcMethodError(
                    f"RPC error for {method}: {error.get('message')}",
                    method=method,
                    code=parse_quantity(error.get("code")),
                    data=error.get("data"),
                )
            raise RpcMethodError(f"RPC error for {method}: {error}", method=method)

        return body.get("result")

    async def estimate_approve_gas(self, *, token: str, owner: str, spender: str, amount: int) -> int:
        result = await self._rpc_call(
            "eth_estimateGas",
            [
                {
                    "from": to_checksum_address(owner),
                    "to": to_checksum_address(token),
                    "data": encode_approve_call(spender, amount),
                }
            ],
        )
        gas = parse_quantity(result)
        if gas is None or gas <= 0:
            raise RuntimeError(f"Unexpected eth_estimateGas response: {result}")
        return gas

    async def send_approve(self, *, token: str, spender: str, amount: int, gas_limit: int) -> str:
        if self._account is None:
            raise RuntimeError("PRIVATE_KEY is required to send transactions.")

        nonce = parse_quantity(await self._rpc_call("eth_getTransactionCount", [self._account.address, "pending"]))
        gas_price = parse_quantity(await self._rpc_call("eth_gasPrice"))
        if nonce is None or gas_price is None:
            raise RuntimeError("Unable to resolve nonce or gas price for approval transaction.")

        tx = {
            "to": to_checksum_address(token),
            "data": encode_approve_call(spender, amount),
            "value": 0,
            "gas": int(gas_limit),
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self._chain_id,
        }
        signed = self._account.sign_transaction(tx)
        raw = "0x" + bytes(signed.raw_transaction).hex()
        tx_hash = await self._rpc_call("eth_sendRawTransaction", [raw])
        if not isinstance(tx_hash, str) or not tx_hash:
            raise RuntimeError(f"Unexpected eth_sendRawTransaction response: {tx_hash}")

        log_event(
            self._logger,
            level="info",
            event="approval_transaction_sent",
            message="Approval transaction broadcast",
            chain_id=self._chain_id,
            token=token,
            spender=spender,
            gas_limit=int(gas_limit),
            nonce=nonce,
            tx_hash=tx_hash,
        )
        return tx_hash

    async def get_allowance(self, owner: str, spender: str, token: str) -> int:
        result = await self._rpc_call(
            "eth_call",
            [{"to": to_checksum_address(token), "data": encode_allowance_call(owner, spender)}, "latest"],
        )
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RuntimeError(f"Unexpected allowance response: {result}")
        (allowance,) = abi_decode(["uint256"], bytes.fromhex(result[2:]))
        return int(allowance)

    async def get_block_number(self) -> int:
        result = await self._rpc_call("eth_blockNumber")
        block_number = parse_quantity(result)
        if block_number is None:
            raise RuntimeError(f"Unexpected eth_blockNumber response: {result}")
        return block_number

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        result = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise RuntimeError(f"Unexpected eth_getTransactionReceipt response: {result}")
        return TransactionReceipt.from_rpc(result)
