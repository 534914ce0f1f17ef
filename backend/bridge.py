"""Readiness polling for the per-sandbox bridge API.

The bridge is an HTTP service started inside each container. It becomes
reachable some time after the container starts, and the editor it drives
comes up later still. This module provides bounded, cancellable polling
helpers and a small client for the bridge ``/health`` endpoint.

Usage:
    >>> client = BridgeClient(request_timeout=5.0)
    >>> health = await poll_until(
    ...     lambda: client.health("http://localhost:7100"),
    ...     poll_interval=3.0,
    ...     max_wait=90.0,
    ... )
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BridgeTimeoutError(TimeoutError):
    """Raised when a bridge condition is not met within the maximum wait."""


@dataclass
class BridgeHealth:
    """Result of one bridge health probe.

    Attributes:
        ready: True if the bridge answered ``/health`` with HTTP 200.
        zed_running: Editor process flag reported by the bridge, if any.
        zed_window_id: Editor window id reported by the bridge, if any.
    """

    ready: bool
    zed_running: bool | None = None
    zed_window_id: str | None = None

    @property
    def editor_ready(self) -> bool:
        return self.ready and bool(self.zed_running) and bool(self.zed_window_id)


class BridgeClient:
    """Minimal async client for the bridge API."""

    def __init__(
        self,
        request_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            request_timeout: Timeout in seconds for a single request.
            transport: Optional httpx transport, used by tests.
        """
        self.request_timeout = request_timeout
        self._transport = transport

    async def health(self, bridge_url: str) -> BridgeHealth:
        """Probe ``<bridge_url>/health`` once.

        Connection errors and non-200 answers mean "not ready yet"; they are
        not raised.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.request_timeout, transport=self._transport
            ) as client:
                response = await client.get(f"{bridge_url.rstrip('/')}/health")
        except httpx.HTTPError as e:
            logger.debug("bridge_unreachable", bridge_url=bridge_url, error=str(e))
            return BridgeHealth(ready=False)

        if response.status_code != 200:
            return BridgeHealth(ready=False)

        payload: dict[str, Any] = {}
        try:
            body = response.json()
            if isinstance(body, dict):
                payload = body
        except ValueError:
            pass

        window_id = payload.get("zed_window_id")
        running = payload.get("zed_running")
        return BridgeHealth(
            ready=True,
            zed_running=running if isinstance(running, bool) else None,
            zed_window_id=str(window_id) if window_id else None,
        )


async def poll_until(
    check: Callable[[], Awaitable[T]],
    *,
    poll_interval: float,
    max_wait: float,
    predicate: Callable[[T], bool] = bool,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call ``check`` until ``predicate`` accepts its result.

    Args:
        check: Coroutine factory producing the value to test.
        poll_interval: Seconds between attempts.
        max_wait: Maximum total seconds to wait.
        predicate: Acceptance test for the checked value.
        clock: Monotonic time source.

    Returns:
        The first accepted value.

    Raises:
        BridgeTimeoutError: If no value is accepted within ``max_wait``.
    """
    deadline = clock() + max_wait
    while True:
        value = await check()
        if predicate(value):
            return value
        remaining = deadline - clock()
        if remaining <= 0:
            raise BridgeTimeoutError(f"Condition not met within {max_wait} seconds")
        await asyncio.sleep(min(poll_interval, remaining))


async def wait_until_stable(
    fetch: Callable[[], Awaitable[T | None]],
    *,
    poll_interval: float,
    stability_window: float,
    max_wait: float,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Wait until ``fetch`` returns the same non-None value for a while.

    The value is considered settled once it has been observed unchanged for
    ``stability_window`` seconds. ``None`` means "nothing yet" and resets
    the window.

    Args:
        fetch: Coroutine factory returning the current value or None.
        poll_interval: Seconds between fetches.
        stability_window: Seconds a value must stay unchanged.
        max_wait: Maximum total seconds to wait.
        clock: Monotonic time source.

    Returns:
        The settled value.

    Raises:
        BridgeTimeoutError: If nothing settles within ``max_wait``.
    """
    start = clock()
    deadline = start + max_wait
    last_value: T | None = None
    last_change = start

    while True:
        value = await fetch()
        now = clock()
        if value is None:
            last_value = None
        elif value != last_value:
            last_value = value
            last_change = now
        elif now - last_change >= stability_window:
            return value

        remaining = deadline - now
        if remaining <= 0:
            raise BridgeTimeoutError(
                f"Value did not stabilise within {max_wait} seconds"
            )
        await asyncio.sleep(min(poll_interval, remaining))
