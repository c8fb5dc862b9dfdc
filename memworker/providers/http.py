"""HTTP fetch with first-byte / total timeouts, bounded retry and cancellation."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass

import httpx

from memworker.logging import get_logger
from memworker.providers.errors import ProviderCancelledError, ProviderTimeoutError

logger = get_logger(__name__)

DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class FetchResult:
    """Fully drained response; partial bodies never leave this module."""

    ok: bool
    status: int
    body: str


class FetchOutcomeKind(enum.Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class FetchOutcome:
    """Tagged result of one attempt; the retry policy switches on ``kind``."""

    kind: FetchOutcomeKind
    result: FetchResult | None = None
    error: BaseException | None = None

    def unwrap(self) -> FetchResult:
        if self.kind is FetchOutcomeKind.OK and self.result is not None:
            return self.result
        assert self.error is not None
        raise self.error


async def _send_and_drain(
    client: httpx.AsyncClient,
    request: httpx.Request,
    first_byte: asyncio.Event,
) -> FetchResult:
    response = await client.send(request, stream=True)
    # Headers are in: the first-byte timer no longer applies.
    first_byte.set()
    try:
        await response.aread()
    finally:
        await response.aclose()
    return FetchResult(ok=response.is_success, status=response.status_code, body=response.text)


def _next_deadline(
    started: float,
    now: float,
    first_byte: asyncio.Event,
    first_byte_timeout: float,
    total_timeout: float,
) -> tuple[float | None, str, float]:
    """Return (seconds until the nearest armed timer, its phase, its limit)."""
    armed: list[tuple[float, str, float]] = []
    if total_timeout > 0:
        armed.append((started + total_timeout - now, "total", total_timeout))
    if first_byte_timeout > 0 and not first_byte.is_set():
        armed.append((started + first_byte_timeout - now, "first_byte", first_byte_timeout))
    if not armed:
        return None, "", 0.0
    delay, phase, limit = min(armed)
    return max(0.0, delay), phase, limit


async def _attempt(
    client: httpx.AsyncClient,
    request: httpx.Request,
    first_byte_timeout: float,
    total_timeout: float,
    cancel: asyncio.Event | None,
) -> FetchOutcome:
    """Run one request under both timers and the cancel signal."""
    if cancel is not None and cancel.is_set():
        return FetchOutcome(
            FetchOutcomeKind.CANCELLED,
            error=ProviderCancelledError("Request cancelled before it was sent"),
        )

    loop = asyncio.get_running_loop()
    started = loop.time()
    first_byte = asyncio.Event()

    fetch_task = asyncio.create_task(_send_and_drain(client, request, first_byte))
    first_byte_task = asyncio.create_task(first_byte.wait())
    cancel_task = asyncio.create_task(cancel.wait()) if cancel is not None else None
    tasks = [t for t in (fetch_task, first_byte_task, cancel_task) if t is not None]
    waiting: set[asyncio.Task] = set(tasks)

    try:
        while True:
            delay, phase, limit = _next_deadline(
                started, loop.time(), first_byte, first_byte_timeout, total_timeout
            )
            done, _ = await asyncio.wait(waiting, timeout=delay, return_when=asyncio.FIRST_COMPLETED)

            if fetch_task in done:
                exc = fetch_task.exception()
                if exc is not None:
                    return FetchOutcome(FetchOutcomeKind.ERROR, error=exc)
                return FetchOutcome(FetchOutcomeKind.OK, result=fetch_task.result())
            if cancel_task is not None and cancel_task in done:
                return FetchOutcome(
                    FetchOutcomeKind.CANCELLED,
                    error=ProviderCancelledError("Request cancelled by caller"),
                )
            if first_byte_task in done:
                waiting.discard(first_byte_task)
                continue
            if not done:
                return FetchOutcome(
                    FetchOutcomeKind.TIMEOUT,
                    error=ProviderTimeoutError(phase, limit),
                )
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def fetch_with_timeout(
    client: httpx.AsyncClient,
    request: httpx.Request,
    first_byte_timeout: float,
    total_timeout: float,
    cancel: asyncio.Event | None = None,
) -> FetchResult:
    """Send *request* and read the whole body.

    Args:
        first_byte_timeout: Seconds allowed until response headers arrive (0 disables).
        total_timeout: Seconds allowed for connect plus full body read (0 disables).
        cancel: Caller-owned signal; setting it aborts the in-flight request.

    Raises:
        ProviderTimeoutError: A timer fired first.
        ProviderCancelledError: *cancel* was set before completion.
    """
    outcome = await _attempt(client, request, first_byte_timeout, total_timeout, cancel)
    return outcome.unwrap()


async def fetch_with_timeout_and_retry(
    client: httpx.AsyncClient,
    request: httpx.Request,
    first_byte_timeout: float = 0,
    total_timeout: float = 0,
    cancel: asyncio.Event | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> FetchResult:
    """Like :func:`fetch_with_timeout`, retrying timed-out attempts only.

    HTTP status codes are returned to the caller, never retried here. With both
    timeouts disabled this is a single plain attempt.
    """
    if first_byte_timeout <= 0 and total_timeout <= 0:
        outcome = await _attempt(client, request, 0, 0, cancel)
        return outcome.unwrap()

    attempts = max(1, max_retries)
    last_timeout: FetchOutcome | None = None
    for attempt in range(1, attempts + 1):
        outcome = await _attempt(client, request, first_byte_timeout, total_timeout, cancel)
        if outcome.kind is not FetchOutcomeKind.TIMEOUT:
            return outcome.unwrap()

        last_timeout = outcome
        logger.warning(
            "Request timeout, retrying" if attempt < attempts else "Request timeout, giving up",
            attempt=attempt,
            max_retries=attempts,
            url=str(request.url),
            phase=getattr(outcome.error, "phase", None),
            first_byte_timeout=first_byte_timeout,
            total_timeout=total_timeout,
        )

    assert last_timeout is not None
    return last_timeout.unwrap()
