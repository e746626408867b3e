from __future__ import annotations

import os
from dataclasses import dataclass

from tradesync.reconcile.approval import APPROVE_GAS_LIMIT_DEFAULT
from tradesync.storage.settings import to_bool, to_float, to_int

DEFAULT_POLL_INTERVAL_MS = 30_000


@dataclass(slots=True)
class AppSettings:
    chain_id: int
    rpc_url: str
    private_key: str
    mempool_ws_url: str
    mempool_api_key: str
    quote_api_url: str
    settlement_contract_address: str
    allowance_spender_address: str
    pending_orders_poll_interval_ms: int
    unfillable_tolerance_bps: int
    approve_gas_limit_default: int
    gas_margin_bps: int
    app_id: int
    block_poll_interval_seconds: float
    order_expiry_check_interval_seconds: float
    order_status_poll_interval_seconds: float
    error_backoff_seconds: float
    allows_offchain_signing: bool

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            chain_id=max(1, to_int(os.getenv("CHAIN_ID"), 1)),
            rpc_url=os.getenv("RPC_URL", ""),
            private_key=os.getenv("PRIVATE_KEY", ""),
            mempool_ws_url=os.getenv("MEMPOOL_WS_URL", "wss://api.blocknative.com/v0"),
            mempool_api_key=os.getenv("MEMPOOL_API_KEY", ""),
            quote_api_url=os.getenv("QUOTE_API_URL", "https://api.cow.fi/mainnet"),
            settlement_contract_address=os.getenv(
                "SETTLEMENT_CONTRACT_ADDRESS",
                "0x9008D19f58AAbD9eD0D60971565AA8510560ab41",
            ),
            allowance_spender_address=os.getenv(
                "ALLOWANCE_SPENDER_ADDRESS",
                "0xC92E8bdf79f0507f65a392b0ab4667716BFE0110",
            ),
            pending_orders_poll_interval_ms=max(
                1_000,
                to_int(os.getenv("PENDING_ORDERS_PRICE_CHECK_POLL_INTERVAL_MS"), DEFAULT_POLL_INTERVAL_MS),
            ),
            unfillable_tolerance_bps=min(
                9_999,
                max(0, to_int(os.getenv("UNFILLABLE_TOLERANCE_BPS"), 100)),
            ),
            approve_gas_limit_default=max(
                21_000,
                to_int(os.getenv("APPROVE_GAS_LIMIT_DEFAULT"), APPROVE_GAS_LIMIT_DEFAULT),
            ),
            gas_margin_bps=max(0, to_int(os.getenv("GAS_MARGIN_BPS"), 2_000)),
            app_id=max(0, to_int(os.getenv("APP_ID"), 0)),
            block_poll_interval_seconds=max(1.0, to_float(os.getenv("BLOCK_POLL_INTERVAL_SECONDS"), 12.0)),
            order_expiry_check_interval_seconds=max(
                1.0,
                to_float(os.getenv("ORDER_EXPIRY_CHECK_INTERVAL_SECONDS"), 30.0),
            ),
            order_status_poll_interval_seconds=max(
                1.0,
                to_float(os.getenv("ORDER_STATUS_POLL_INTERVAL_SECONDS"), 15.0),
            ),
            error_backoff_seconds=max(0.2, to_float(os.getenv("ERROR_BACKOFF_SECONDS"), 2.0)),
            allows_offchain_signing=to_bool(os.getenv("ALLOWS_OFFCHAIN_SIGNING"), True),
        )
