# app/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ...config import settings

log = logging.getLogger(__name__)

RETRYABLE_STATUS: frozenset[int] = frozenset({429, 500, 502, 503, 504})


@dataclass
class _CircuitState:
    fails: int = 0
    opened_at: float | None = None


_CIRCUIT = _CircuitState()
_RATE_LOCK = asyncio.Lock()
_LAST_TS = 0.0


def _circuit_is_open(now: float) -> bool:
    if _CIRCUIT.opened_at is None:
        return False
    if (now - _CIRCUIT.opened_at) < float(settings.HTTP_CIRCUIT_RESET_S):
        return True
    # half-open: let the next call through, one more failure re-opens it
    _CIRCUIT.opened_at = None
    _CIRCUIT.fails = int(settings.HTTP_CIRCUIT_FAIL_THRESHOLD) - 1
    return False


def _circuit_on_success() -> None:
    _CIRCUIT.fails = 0
    _CIRCUIT.opened_at = None


def _circuit_on_failure() -> None:
    _CIRCUIT.fails += 1
    if _CIRCUIT.fails >= int(settings.HTTP_CIRCUIT_FAIL_THRESHOLD) and _CIRCUIT.opened_at is None:
        _CIRCUIT.opened_at = time.time()
        log.warning("circuit opened after %d consecutive failures", _CIRCUIT.fails)


def reset_circuit() -> None:
    """Tests and manual recovery."""
    global _LAST_TS
    _circuit_on_success()
    _LAST_TS = 0.0


async def _rate_limit() -> None:
    """Very simple per-process limiter."""
    global _LAST_TS
    rps = float(settings.HTTP_RATE_LIMIT_RPS)
    if rps <= 0:
        return
    min_gap = 1.0 / rps
    async with _RATE_LOCK:
        now = time.time()
        wait = (_LAST_TS + min_gap) - now
        if wait > 0:
            await asyncio.sleep(wait)
        _LAST_TS = time.time()


async def resilient_request(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json: Any | None = None,
    data: Any | None = None,
    client: httpx.AsyncClient | None = None,
) -> httpx.Response:
    """
    One outbound call with retry/backoff on timeouts, network errors and
    429/5xx. Other 4xx responses are raised immediately: retrying a bad
    request or a bad key only burns quota.
    """
    now = time.time()
    if _circuit_is_open(now):
        raise httpx.HTTPError(f"circuit_open: refusing external call to {url}")

    await _rate_limit()

    timeout = httpx.Timeout(float(settings.HTTP_TIMEOUT_S))
    max_retries = int(settings.HTTP_MAX_RETRIES)
    backoff = float(settings.HTTP_BACKOFF_BASE_S)

    last_exc: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            if client is not None:
                resp = await client.request(method, url, headers=headers, params=params, json=json, data=data)
            else:
                async with httpx.AsyncClient(timeout=timeout) as c:
                    resp = await c.request(method, url, headers=headers, params=params, json=json, data=data)

            if resp.status_code in RETRYABLE_STATUS:
                raise httpx.HTTPStatusError("retryable_status", request=resp.request, response=resp)

            if resp.is_error:
                # caller's problem, not the provider's health
                resp.raise_for_status()

            _circuit_on_success()
            return resp
        except httpx.HTTPStatusError as e:
            if e.response.status_code not in RETRYABLE_STATUS:
                raise
            last_exc = e
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            last_exc = e

        _circuit_on_failure()
        if attempt >= max_retries:
            break
        delay = min(5.0, backoff * (2**attempt))
        log.info("retrying %s %s in %.2fs (attempt %d): %r", method, url, delay, attempt + 1, last_exc)
        await asyncio.sleep(delay)

    assert last_exc is not None
    raise last_exc
