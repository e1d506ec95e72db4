# crmsync/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ...config import settings

log = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass
class _CircuitState:
    fails: int = 0
    opened_at: float | None = None


class CircuitOpen(httpx.HTTPError):
    pass


class ResilientHttp:
    """
    httpx wrapper with retry/backoff on 429/5xx/timeouts, a consecutive-failure
    circuit breaker and a minimum gap between requests. One instance per provider
    so a flaky provider does not trip the breaker for the others.
    """

    def __init__(
        self,
        name: str,
        *,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        backoff_base_s: float | None = None,
        rate_limit_rps: float | None = None,
        circuit_fail_threshold: int | None = None,
        circuit_reset_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.timeout_s = float(settings.HTTP_TIMEOUT_S if timeout_s is None else timeout_s)
        self.max_retries = int(settings.HTTP_MAX_RETRIES if max_retries is None else max_retries)
        self.backoff_base_s = float(settings.HTTP_BACKOFF_BASE_S if backoff_base_s is None else backoff_base_s)
        self.rate_limit_rps = float(settings.HTTP_RATE_LIMIT_RPS if rate_limit_rps is None else rate_limit_rps)
        self.circuit_fail_threshold = int(
            settings.HTTP_CIRCUIT_FAIL_THRESHOLD if circuit_fail_threshold is None else circuit_fail_threshold
        )
        self.circuit_reset_s = float(settings.HTTP_CIRCUIT_RESET_S if circuit_reset_s is None else circuit_reset_s)
        self.transport = transport

        self._circuit = _CircuitState()
        self._rate_lock = asyncio.Lock()
        self._last_ts = 0.0

    def _circuit_is_open(self, now: float) -> bool:
        if self._circuit.opened_at is None:
            return False
        if (now - self._circuit.opened_at) < self.circuit_reset_s:
            return True
        # half-open: let one call through
        self._circuit.opened_at = None
        self._circuit.fails = max(0, self.circuit_fail_threshold - 1)
        return False

    def _on_success(self) -> None:
        self._circuit.fails = 0
        self._circuit.opened_at = None

    def _on_failure(self) -> None:
        self._circuit.fails += 1
        if self._circuit.fails >= self.circuit_fail_threshold:
            if self._circuit.opened_at is None:
                log.warning("circuit opened for %s after %d failures", self.name, self._circuit.fails)
            self._circuit.opened_at = time.time()

    async def _rate_limit(self) -> None:
        if self.rate_limit_rps <= 0:
            return
        min_gap = 1.0 / self.rate_limit_rps
        async with self._rate_lock:
            now = time.time()
            wait = (self._last_ts + min_gap) - now
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_ts = time.time()

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.timeout_s)
        if self.transport is not None:
            return httpx.AsyncClient(timeout=timeout, transport=self.transport, follow_redirects=True)
        return httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        data: Any | None = None,
    ) -> httpx.Response:
        if self._circuit_is_open(time.time()):
            raise CircuitOpen(f"circuit_open: refusing external call to {url}")

        await self._rate_limit()

        last_exc: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                async with self._client() as client:
                    resp = await client.request(method, url, headers=headers, params=params, json=json, data=data)

                if resp.status_code in RETRYABLE_STATUS:
                    raise httpx.HTTPStatusError("retryable_status", request=resp.request, response=resp)

                # 4xx other than 429 is the caller's problem: no retry, no breaker hit
                resp.raise_for_status()
                self._on_success()
                return resp
            except httpx.HTTPStatusError as e:
                last_exc = e
                if e.response.status_code not in RETRYABLE_STATUS:
                    raise
                self._on_failure()
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exc = e
                self._on_failure()

            if attempt >= self.max_retries:
                break
            await asyncio.sleep(min(5.0, self.backoff_base_s * (2**attempt)))

        assert last_exc is not None
        raise last_exc
