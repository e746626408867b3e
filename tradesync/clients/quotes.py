from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from tradesync.common import log_event
from tradesync.state.types import OrderKind, SignedOrder, parse_quantity

RETRYABLE_STATUSES = frozenset({500, 502, 503, 504})


class QuoteServiceError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, error_type: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.error_type = error_type


class QuoteRateLimitError(QuoteServiceError):
    def __init__(self, message: str, *, retry_after_seconds: float | None = None) -> None:
        super().__init__(message, status=429)
        self.retry_after_seconds = retry_after_seconds


def _parse_retry_after_seconds(raw: str | None) -> float | None:
    if raw is None:
        return None

    value = raw.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        return None

    return seconds if seconds > 0 else None


def _preview(body: str, limit: int = 300) -> str:
    compact = " ".join(body.split())
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


@dataclass(slots=True, frozen=True)
class QuoteParams:
    chain_id: int
    amount: int
    kind: OrderKind
    sell_token: str
    buy_token: str
    base_token: str
    quote_token: str
    from_decimals: int
    to_decimals: int
    valid_to: int


@dataclass(slots=True, frozen=True)
class PriceInformation:
    token: str
    amount: int | None


class QuoteServiceClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        base_url: str,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self._logger = logger
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def healthcheck(self) -> None:
        await self._request("GET", "/api/v1/version")

    async def _request(self, method: str, path: str, *, payload: dict[str, Any] | None = None) -> Any:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise RuntimeError("Quote HTTP session is not initialized.")

        url = f"{self._base_url}{path}"
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._session.request(method, url, json=payload) as response:
                    status = response.status
                    retry_after_seconds = _parse_retry_after_seconds(response.headers.get("Retry-After"))
                    body = await response.text()
            except aiohttp.ClientError as error:
                last_error = error
                if attempt < self._max_attempts:
                    log_event(
                        self._logger,
                        level="warning",
                        event="quote_network_retry",
                        message="Quote service request failed; retrying",
                        path=path,
                        attempt=attempt,
                        max_attempts=self._max_attempts,
                        error=str(error),
                    )
                    await asyncio.sleep(self._retry_backoff_seconds * attempt)
                    continue
                raise QuoteServiceError(f"Quote service request failed: {error}") from error

            if status == 429:
                raise QuoteRateLimitError(
                    f"Quote service rate limited: path={path}",
                    retry_after_seconds=retry_after_seconds,
                )

            if status in RETRYABLE_STATUSES and attempt < self._max_attempts:
                sleep_seconds = (
                    retry_after_seconds
                    if retry_after_seconds is not None
                    else self._retry_backoff_seconds * attempt
                )
                log_event(
                    self._logger,
                    level="warning",
                    event="quote_retry",
                    message="Quote service returned retryable status",
                    path=path,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    status=status,
                    retry_after_seconds=sleep_seconds,
                )
                await asyncio.sleep(sleep_seconds)
                continue

            data: Any = None
            if body:
                try:
                    data = json.loads(body)
                except json.JSONDecodeError:
                    data = None

            if status >= 400:
                error_type = data.get("errorType") if isinstance(data, dict) else None
                description = data.get("description") if isinstance(data, dict) else _preview(body)
                raise QuoteServiceError(
                    f"Quote service error: status={status} type={error_type} description={description}",
                    status=status,
                    error_type=error_type,
                )
            return data

        raise QuoteServiceError(f"Quote service request failed: {last_error}")

    async def get_best_quote(self, params: QuoteParams) -> PriceInformation:
        path = (
            f"/api/v1/markets/{params.base_token}-{params.quote_token}"
            f"/{params.kind.value}/{params.amount}"
        )
        data = await self._request("GET", path)
        if not isinstance(data, dict):
            raise QuoteServiceError(f"Unexpected quote response: {data}")

        return PriceInformation(
            token=str(data.get("token") or params.quote_token),
            amount=parse_quantity(data.get("amount")),
        )

    async def get_order(self, order_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/api/v1/orders/{order_id}")
        if not isinstance(data, dict):
            raise QuoteServiceError(f"Unexpected order response: {data}")
        return data

    async def submit_order(self, chain_id: int, signed_order: SignedOrder) -> str:
        data = await self._request("POST", "/api/v1/orders", payload=signed_order.to_api_payload())
        if not isinstance(data, str) or not data:
            raise QuoteServiceError(f"Unexpected order submission response: {data}")

        log_event(
            self._logger,
            level="info",
            event="order_submitted",
            message="Order accepted by settlement service",
            chain_id=chain_id,
            order_id=data,
            signing_scheme=signed_order.signing_scheme.value,
        )
        return data
