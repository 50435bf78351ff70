"""
Resilient backend calls for the MCP bridge.

`fetch_with_retry` runs one outbound call as a bounded loop of attempts, each
raced against its own deadline, and returns a `RemoteCallOutcome` instead of
raising. The deadline is also handed to httpx as the request timeout.
`fetch_once` is the plain single-attempt GET used by resource reads.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

logger = logging.getLogger("Mo5Rag.mcp.requests")

# Failures that mean "no usable HTTP exchange happened"; anything else propagates.
RETRYABLE_ERRORS: Tuple[type, ...] = (asyncio.TimeoutError, httpx.TransportError)

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RemoteCallSpec:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    timeout: float = 30.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.backoff_base < 0:
            raise ValueError("backoff_base must be >= 0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be within [0.0, 1.0]")

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt ``attempt`` (0-based)."""
        delay = self.backoff_base * (2 ** attempt)
        if self.jitter:
            delay *= random.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return delay


@dataclass(frozen=True)
class RemoteCallOutcome:
    response: Optional[httpx.Response] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    delays: Tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if (self.response is None) == (self.error is None):
            raise ValueError("exactly one of response/error must be set")

    @property
    def ok(self) -> bool:
        return self.response is not None


def describe_transport_error(exc: BaseException) -> str:
    """Human-readable cause for a transport failure; timeouts often carry no message."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        detail = str(exc).strip()
        return f"request timed out ({detail})" if detail else "request timed out"
    detail = str(exc).strip()
    return detail or type(exc).__name__


async def _attempt(client: httpx.AsyncClient, spec: RemoteCallSpec) -> httpx.Response:
    request = client.build_request(
        spec.method,
        spec.url,
        headers=spec.headers or None,
        json=spec.body,
        timeout=spec.timeout,
    )
    # Deadline covers the wait for response headers only.
    response = await asyncio.wait_for(client.send(request, stream=True), timeout=spec.timeout)
    try:
        await response.aread()
    finally:
        await response.aclose()
    return response


async def fetch_with_retry(
    client: httpx.AsyncClient,
    spec: RemoteCallSpec,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> RemoteCallOutcome:
    """Perform ``spec`` with per-attempt timeout and exponential backoff.

    Only transport-level failures are retried. Any completed HTTP exchange,
    4xx/5xx included, is returned to the caller untouched.
    """
    delays = []
    last_error: Optional[BaseException] = None
    for attempt in range(spec.max_attempts):
        try:
            response = await _attempt(client, spec)
        except RETRYABLE_ERRORS as exc:
            last_error = exc
            if attempt == spec.max_attempts - 1:
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s; giving up.",
                    spec.method,
                    spec.url,
                    attempt + 1,
                    spec.max_attempts,
                    describe_transport_error(exc),
                )
                break
            delay = spec.backoff_delay(attempt)
            logger.warning(
                "%s %s failed (attempt %d/%d): %s; retrying in %.3fs.",
                spec.method,
                spec.url,
                attempt + 1,
                spec.max_attempts,
                describe_transport_error(exc),
                delay,
            )
            delays.append(delay)
            await sleep(delay)
            continue
        return RemoteCallOutcome(response=response, attempts=attempt + 1, delays=tuple(delays))

    return RemoteCallOutcome(error=last_error, attempts=spec.max_attempts, delays=tuple(delays))


async def fetch_once(client: httpx.AsyncClient, url: str, *, timeout: float) -> httpx.Response:
    """Single unretried GET; transport errors propagate to the caller."""
    return await client.get(url, timeout=timeout)
