from __future__ import annotations

import asyncio
import contextlib
import signal

from dotenv import load_dotenv

from tradesync.clients import ChainRpcClient, MempoolStreamClient, QuoteServiceClient
from tradesync.common import log_event
from tradesync.reconcile import (
    CancelReplaceWatcher,
    ExpiredOrdersSweeper,
    OrderStatusPoller,
    ReceiptPoller,
    UnfillableOrdersPoller,
    get_activity_derived_state,
    get_activity_descriptor,
)
from tradesync.runtime import (
    AppSettings,
    StateSnapshotWriter,
    bootstrap_dependencies,
    build_trading_services,
    restore_state,
    run_reconciliation,
    setup_logger,
)
from tradesync.state import OrderStore, TransactionStore
from tradesync.storage import StorageGateway, StorageSettings


async def main() -> None:
    load_dotenv()
    logger = setup_logger()

    app_settings = AppSettings.from_env()
    storage_settings = StorageSettings.from_env()
    chain_id = app_settings.chain_id

    storage = StorageGateway(storage_settings, logger)
    tx_store = TransactionStore(logger)
    order_store = OrderStore(logger)

    chain = ChainRpcClient(
        logger=logger,
        rpc_url=app_settings.rpc_url,
        chain_id=chain_id,
        private_key=app_settings.private_key or None,
    )
    quotes = QuoteServiceClient(logger=logger, base_url=app_settings.quote_api_url)
    mempool = MempoolStreamClient(
        logger=logger,
        ws_url=app_settings.mempool_ws_url,
        api_key=app_settings.mempool_api_key,
        chain_id=chain_id,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        logger.info(
            "Shutdown signal received",
            extra={"event": "shutdown_signal_received", "signal": sig.name},
        )
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown, sig)

    await bootstrap_dependencies(
        logger=logger,
        stop_event=stop_event,
        app_settings=app_settings,
        storage=storage,
        chain=chain,
        quotes=quotes,
    )
    await restore_state(
        logger=logger,
        storage=storage,
        chain_id=chain_id,
        tx_store=tx_store,
        order_store=order_store,
    )

    pending_ids = sorted(tx_store.all_pending_hashes(chain_id))
    pending_ids.extend(order.id for order in order_store.pending_orders(chain_id))
    for activity_id in pending_ids:
        state = get_activity_derived_state(
            chain_id,
            activity_id,
            get_activity_descriptor(chain_id, activity_id, tx_store=tx_store, order_store=order_store),
            allows_offchain_signing=app_settings.allows_offchain_signing,
        )
        if state is not None:
            log_event(
                logger,
                level="info",
                event="activity_resumed",
                message="Resuming reconciliation of pending activity",
                activity_id=activity_id,
                type=state.type.value,
                status=state.status.value,
                summary=state.summary,
                link=state.activity_link_url,
            )

    mempool_watcher = CancelReplaceWatcher(
        logger=logger,
        chain_id=chain_id,
        tx_store=tx_store,
        mempool=mempool,
    )
    unfillable_poller = UnfillableOrdersPoller(
        logger=logger,
        chain_id=chain_id,
        order_store=order_store,
        quotes=quotes,
        poll_interval_ms=app_settings.pending_orders_poll_interval_ms,
        tolerance_bps=app_settings.unfillable_tolerance_bps,
    )
    receipt_poller = ReceiptPoller(
        logger=logger,
        chain_id=chain_id,
        tx_store=tx_store,
        chain=chain,
        poll_interval_seconds=app_settings.block_poll_interval_seconds,
    )
    expiry_sweeper = ExpiredOrdersSweeper(
        logger=logger,
        chain_id=chain_id,
        order_store=order_store,
        check_interval_seconds=app_settings.order_expiry_check_interval_seconds,
    )
    order_status_poller = OrderStatusPoller(
        logger=logger,
        chain_id=chain_id,
        order_store=order_store,
        settlement=quotes,
        poll_interval_seconds=app_settings.order_status_poll_interval_seconds,
    )
    services = build_trading_services(
        logger=logger,
        app_settings=app_settings,
        chain=chain,
        owner=chain.address,
        submitter=quotes,
        tx_store=tx_store,
        order_store=order_store,
    )
    snapshot_writer = StateSnapshotWriter(
        logger=logger,
        storage=storage,
        tx_store=tx_store,
        order_store=order_store,
        debounce_seconds=storage_settings.persist_debounce_seconds,
    )

    log_event(
        logger,
        level="info",
        event="service_started",
        message="Reconciliation service started",
        chain_id=chain_id,
        account=chain.address,
        spender=services.spender,
        settlement_contract=app_settings.settlement_contract_address,
        app_id=app_settings.app_id,
    )

    try:
        await run_reconciliation(
            logger=logger,
            stop_event=stop_event,
            app_settings=app_settings,
            runners={
                "mempool_stream": mempool.run,
                "mempool_watcher": mempool_watcher.run,
                "unfillable_poller": unfillable_poller.run,
                "receipt_poller": receipt_poller.run,
                "order_status_poller": order_status_poller.run,
                "expiry_sweeper": expiry_sweeper.run,
                "snapshot_writer": snapshot_writer.run,
            },
        )
    finally:
        with contextlib.suppress(Exception):
            await mempool_watcher.close()
        unfillable_poller.close()
        with contextlib.suppress(Exception):
            await snapshot_writer.flush()
        snapshot_writer.close()

        with contextlib.suppress(Exception):
            await mempool.close()
        with contextlib.suppress(Exception):
            await quotes.close()
        with contextlib.suppress(Exception):
            await chain.close()
        with contextlib.suppress(Exception):
            await storage.close()

        logger.info("Shutdown completed", extra={"event": "shutdown_completed"})


if __name__ == "__main__":
    asyncio.run(main())
