from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Protocol

from tradesync.clients.chain import MAX_UINT256
from tradesync.common import guarded_call, log_event, now_ms
from tradesync.state.transactions import TransactionStore
from tradesync.state.types import ApprovalOperation, HashType, TokenAmount, Transaction

APPROVE_GAS_LIMIT_DEFAULT = 150_000


class ApprovalState(str, Enum):
    UNKNOWN = "unknown"
    NOT_APPROVED = "not_approved"
    PENDING = "pending"
    APPROVED = "approved"


class AllowanceChain(Protocol):
    async def estimate_approve_gas(self, *, token: str, owner: str, spender: str, amount: int) -> int:
        ...

    async def send_approve(self, *, token: str, spender: str, amount: int, gas_limit: int) -> str:
        ...

    async def get_allowance(self, owner: str, spender: str, token: str) -> int:
        ...


def compute_approval_state(
    *,
    amount_to_approve: TokenAmount | None,
    spender: str | None,
    allowance: int | None,
    has_pending_approval: bool,
) -> ApprovalState:
    if amount_to_approve is None or not spender:
        return ApprovalState.UNKNOWN
    if amount_to_approve.token.is_native:
        return ApprovalState.APPROVED
    if allowance is None:
        return ApprovalState.UNKNOWN
    if allowance < amount_to_approve.raw:
        return ApprovalState.PENDING if has_pending_approval else ApprovalState.NOT_APPROVED
    return ApprovalState.APPROVED


def calculate_gas_margin(gas: int, margin_bps: int) -> int:
    return gas * (10_000 + margin_bps) // 10_000


def _noop_confirmation(message: str) -> None:
    return None


def _noop_close() -> None:
    return None


class ApprovalManager:
    """Derives the approval state of a token for a spender and submits approvals.

    ``open_confirmation`` runs before the approval is broadcast and
    ``close_modals`` runs once the broadcast settles, whether or not it succeeded.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain: AllowanceChain,
        tx_store: TransactionStore,
        chain_id: int | None,
        owner: str | None,
        default_gas_limit: int = APPROVE_GAS_LIMIT_DEFAULT,
        gas_margin_bps: int = 2_000,
        open_confirmation: Callable[[str], None] = _noop_confirmation,
        close_modals: Callable[[], None] = _noop_close,
    ) -> None:
        self._logger = logger
        self._chain = chain
        self._tx_store = tx_store
        self._chain_id = chain_id
        self._owner = owner
        self._default_gas_limit = default_gas_limit
        self._gas_margin_bps = gas_margin_bps
        self._open_confirmation = open_confirmation
        self._close_modals = close_modals

    async def read_allowance(self, token: str, spender: str) -> int | None:
        if not self._owner:
            return None
        return await guarded_call(
            lambda: self._chain.get_allowance(self._owner, spender, token),
            logger=self._logger,
            event="allowance_read_failed",
            message="Failed to read token allowance",
            token=token,
            spender=spender,
        )

    async def get_state(self, amount_to_approve: TokenAmount | None, spender: str | None) -> ApprovalState:
        allowance: int | None = None
        has_pending = False
        if amount_to_approve is not None and spender and not amount_to_approve.token.is_native:
            token_address = amount_to_approve.token.address
            allowance = await self.read_allowance(token_address, spender)
            if self._chain_id is not None:
                has_pending = self._tx_store.has_pending_approval(self._chain_id, token_address, spender)

        return compute_approval_state(
            amount_to_approve=amount_to_approve,
            spender=spender,
            allowance=allowance,
            has_pending_approval=has_pending,
        )

    def _reject(self, event: str, message: str, **fields: object) -> None:
        log_event(self._logger, level="error", event=event, message=message, **fields)

    async def _estimate_gas(self, *, token: str, spender: str, amount: int) -> tuple[int, bool]:
        owner = self._owner or ""
        try:
            gas = await self._chain.estimate_approve_gas(token=token, owner=owner, spender=spender, amount=MAX_UINT256)
            return gas, False
        except Exception as error:
            log_event(
                self._logger,
                level="info",
                event="approve_max_estimate_failed",
                message="Unlimited approval gas estimate failed; trying the exact amount",
                token=token,
                error=str(error),
            )

        try:
            gas = await self._chain.estimate_approve_gas(token=token, owner=owner, spender=spender, amount=amount)
        except Exception as error:
            log_event(
                self._logger,
                level="warning",
                event="approve_gas_estimate_failed",
                message="Error estimating gas for approval; using default gas limit",
                token=token,
                default_gas_limit=self._default_gas_limit,
                error=str(error),
            )
            gas = self._default_gas_limit
        return gas, True

    async def approve(self, amount_to_approve: TokenAmount | None, spender: str | None) -> str | None:
        state = await self.get_state(amount_to_approve, spender)
        if state != ApprovalState.NOT_APPROVED:
            self._reject("approve_unnecessary", "approve was called unnecessarily", state=state.value)
            return None
        if self._chain_id is None:
            self._reject("approve_missing_chain", "No chain id available for approval")
            return None
        if amount_to_approve is None or amount_to_approve.token.is_native:
            self._reject("approve_missing_token", "No token available for approval")
            return None
        if not spender:
            self._reject("approve_missing_spender", "No spender available for approval")
            return None
        if not self._owner:
            self._reject("approve_missing_owner", "No account available for approval")
            return None

        token = amount_to_approve.token
        estimated_gas, use_exact = await self._estimate_gas(
            token=token.address,
            spender=spender,
            amount=amount_to_approve.raw,
        )
        amount = amount_to_approve.raw if use_exact else MAX_UINT256
        gas_limit = calculate_gas_margin(estimated_gas, self._gas_margin_bps)

        self._open_confirmation(f"Approving {token.symbol} for trading")
        try:
            tx_hash = await self._chain.send_approve(
                token=token.address,
                spender=spender,
                amount=amount,
                gas_limit=gas_limit,
            )
            self._tx_store.add(
                self._chain_id,
                Transaction(
                    hash=tx_hash,
                    hash_type=HashType.ETHEREUM_TX,
                    from_address=self._owner,
                    added_time=now_ms(),
                    summary=f"Approve {token.symbol}",
                    operation=ApprovalOperation(token_address=token.address, spender=spender),
                ),
            )
        finally:
            self._close_modals()

        log_event(
            self._logger,
            level="info",
            event="approval_submitted",
            message="Approval transaction submitted",
            chain_id=self._chain_id,
            token=token.address,
            spender=spender,
            exact_amount=use_exact,
            gas_limit=gas_limit,
            tx_hash=tx_hash,
        )
        return tx_hash
