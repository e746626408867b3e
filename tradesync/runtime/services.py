from __future__ import annotations

import logging
from dataclasses import dataclass

from tradesync.clients.signing import OrderSigner
from tradesync.reconcile.approval import AllowanceChain, ApprovalManager, ApprovalState
from tradesync.reconcile.submission import OrderSubmissionPipeline, OrderSubmitter, SwapIntent
from tradesync.state.orders import OrderStore
from tradesync.state.transactions import TransactionStore
from tradesync.state.types import TokenAmount

from .settings import AppSettings


@dataclass(slots=True, frozen=True)
class TradingServices:
    """Account-facing entry points that record new activity in the stores."""

    signer: OrderSigner
    approvals: ApprovalManager
    submissions: OrderSubmissionPipeline
    spender: str

    async def approval_state(self, amount: TokenAmount | None) -> ApprovalState:
        return await self.approvals.get_state(amount, self.spender)

    async def approve(self, amount: TokenAmount | None) -> str | None:
        return await self.approvals.approve(amount, self.spender)

    async def post_order(self, intent: SwapIntent) -> str:
        return await self.submissions.post_order(intent)


def build_trading_services(
    *,
    logger: logging.Logger,
    app_settings: AppSettings,
    chain: AllowanceChain,
    owner: str | None,
    submitter: OrderSubmitter,
    tx_store: TransactionStore,
    order_store: OrderStore,
) -> TradingServices:
    signer = OrderSigner(
        chain_id=app_settings.chain_id,
        settlement_contract=app_settings.settlement_contract_address,
        private_key=app_settings.private_key or None,
    )
    approvals = ApprovalManager(
        logger=logger,
        chain=chain,
        tx_store=tx_store,
        chain_id=app_settings.chain_id,
        owner=owner,
        default_gas_limit=app_settings.approve_gas_limit_default,
        gas_margin_bps=app_settings.gas_margin_bps,
    )
    submissions = OrderSubmissionPipeline(
        logger=logger,
        order_store=order_store,
        signer=signer,
        submitter=submitter,
        app_id=app_settings.app_id,
    )
    return TradingServices(
        signer=signer,
        approvals=approvals,
        submissions=submissions,
        spender=app_settings.allowance_spender_address,
    )
