from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from tradesync.common import log_event, now_iso, wait_with_stop

NETWORK_NAMES = {
    1: "main",
    5: "goerli",
    100: "xdai",
    11155111: "sepolia",
}

SPEED_UP_EVENT = "txSpeedUp"
CONFIRMED_EVENT = "txConfirmed"


class MempoolConnectionError(RuntimeError):
    pass


@dataclass(slots=True, frozen=True)
class MempoolEvent:
    watched_hash: str
    event_code: str
    hash: str | None
    status: str | None = None


MempoolHandler = Callable[[MempoolEvent], None]


class MempoolSubscription:
    def __init__(self, client: "MempoolStreamClient", tx_hash: str) -> None:
        self._client = client
        self.hash = tx_hash
        self._handlers: dict[str, list[MempoolHandler]] = {}

    def on_speed_up(self, handler: MempoolHandler) -> None:
        self._handlers.setdefault(SPEED_UP_EVENT, []).append(handler)

    def on_confirmed(self, handler: MempoolHandler) -> None:
        self._handlers.setdefault(CONFIRMED_EVENT, []).append(handler)

    async def unsubscribe(self) -> None:
        await self._client.unsubscribe(self.hash)

    def dispatch(self, event: MempoolEvent) -> int:
        handlers = self._handlers.get(event.event_code, [])
        for handler in handlers:
            handler(event)
        return len(handlers)


class MempoolStreamClient:
    """Transaction watch stream in the Blocknative wire format.

    ``run`` owns the websocket: it reconnects with exponential backoff and
    re-sends a watch for every active subscription after each reconnect.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        ws_url: str,
        api_key: str,
        chain_id: int,
        reconnect_min_seconds: float = 1.0,
        reconnect_max_seconds: float = 60.0,
        ping_interval_seconds: float = 20.0,
    ) -> None:
        self._logger = logger
        self._ws_url = ws_url
        self._api_key = api_key
        self._chain_id = chain_id
        self._network = NETWORK_NAMES.get(chain_id, "main")
        self._reconnect_min_seconds = max(0.1, reconnect_min_seconds)
        self._reconnect_max_seconds = max(self._reconnect_min_seconds, reconnect_max_seconds)
        self._ping_interval_seconds = ping_interval_seconds
        self._subscriptions: dict[str, MempoolSubscription] = {}
        self._ws: Any | None = None

    @property
    def active_hashes(self) -> set[str]:
        return set(self._subscriptions)

    def _envelope(self, category_code: str, event_code: str, **extra: Any) -> dict[str, Any]:
        message: dict[str, Any] = {
            "timeStamp": now_iso(),
            "dappId": self._api_key,
            "version": "1",
            "blockchain": {"system": "ethereum", "network": self._network},
            "categoryCode": category_code,
            "eventCode": event_code,
        }
        message.update(extra)
        return message

    async def _send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise MempoolConnectionError("Mempool stream is not connected.")
        try:
            await ws.send(json.dumps(message, separators=(",", ":")))
        except ConnectionClosed as error:
            raise MempoolConnectionError(f"Mempool stream closed: {error}") from error

    async def _send_watch(self, tx_hash: str) -> None:
        await self._send(
            self._envelope(
                "activeTransaction",
                "txSent",
                transaction={"hash": tx_hash, "id": tx_hash},
            )
        )

    async def subscribe(self, tx_hash: str) -> MempoolSubscription:
        subscription = self._subscriptions.get(tx_hash)
        if subscription is None:
            subscription = MempoolSubscription(self, tx_hash)
            self._subscriptions[tx_hash] = subscription

        if self._ws is not None:
            try:
                await self._send_watch(tx_hash)
            except MempoolConnectionError:
                self._subscriptions.pop(tx_hash, None)
                raise
        return subscription

    async def unsubscribe(self, tx_hash: str) -> None:
        if self._subscriptions.pop(tx_hash, None) is None:
            return
        if self._ws is None:
            return
        await self._send(
            self._envelope(
                "activeTransaction",
                "unwatch",
                transaction={"hash": tx_hash, "id": tx_hash},
            )
        )

    def _route(self, payload: dict[str, Any]) -> None:
        if payload.get("status") == "error":
            log_event(
                self._logger,
                level="warning",
                event="mempool_stream_error_payload",
                message="Mempool stream reported an error",
                reason=payload.get("reason"),
            )
            return

        event = payload.get("event")
        if not isinstance(event, dict):
            return
        transaction = event.get("transaction")
        if not isinstance(transaction, dict):
            return

        event_code = str(event.get("eventCode") or transaction.get("eventCode") or "")
        event_hash = transaction.get("hash")
        candidates = [transaction.get("originalHash"), transaction.get("replaceHash"), event_hash]
        watched_hash = next(
            (candidate for candidate in candidates if isinstance(candidate, str) and candidate in self._subscriptions),
            None,
        )
        if watched_hash is None:
            return

        mempool_event = MempoolEvent(
            watched_hash=watched_hash,
            event_code=event_code,
            hash=event_hash if isinstance(event_hash, str) else None,
            status=transaction.get("status"),
        )
        try:
            self._subscriptions[watched_hash].dispatch(mempool_event)
        except Exception as error:
            log_event(
                self._logger,
                level="exception",
                event="mempool_handler_failed",
                message="Mempool event handler raised",
                watched_hash=watched_hash,
                event_code=event_code,
                error=str(error),
            )

    async def _receive_loop(self, ws: Any) -> None:
        async for raw in ws:
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                self._route(payload)

    async def run(self, stop_event: asyncio.Event) -> None:
        backoff = self._reconnect_min_seconds
        while not stop_event.is_set():
            try:
                async with websockets.connect(
                    self._ws_url,
                    ping_interval=self._ping_interval_seconds,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    await self._send(self._envelope("initialize", "checkDappId"))
                    for tx_hash in list(self._subscriptions):
                        await self._send_watch(tx_hash)
                    backoff = self._reconnect_min_seconds
                    log_event(
                        self._logger,
                        level="info",
                        event="mempool_stream_connected",
                        message="Mempool stream connected",
                        ws_url=self._ws_url,
                        network=self._network,
                        watched=len(self._subscriptions),
                    )
                    await self._receive_loop(ws)
            except asyncio.CancelledError:
                raise
            except (ConnectionClosed, MempoolConnectionError, OSError) as error:
                log_event(
                    self._logger,
                    level="warning",
                    event="mempool_stream_disconnected",
                    message="Mempool stream disconnected",
                    error=str(error),
                    error_type=type(error).__name__,
                )
            except Exception as error:
                log_event(
                    self._logger,
                    level="exception",
                    event="mempool_stream_failed",
                    message="Mempool stream failed unexpectedly",
                    error=str(error),
                )
            finally:
                self._ws = None

            if stop_event.is_set():
                break
            log_event(
                self._logger,
                level="info",
                event="mempool_stream_reconnect",
                message="Reconnecting to mempool stream",
                backoff_seconds=round(backoff, 2),
            )
            await wait_with_stop(stop_event, backoff)
            backoff = min(backoff * 2, self._reconnect_max_seconds)

    async def close(self) -> None:
        ws = self._ws
        self._subscriptions.clear()
        if ws is not None:
            await ws.close()
