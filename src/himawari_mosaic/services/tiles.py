from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from ..config import (
    CONNECT_TIMEOUT,
    MAX_CONNECTIONS,
    REQUEST_TIMEOUT,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    USER_AGENT,
)
from ..errors import HttpStatusError, TileFetchFailed, TransportError
from ..models import GridCoordinate

log = logging.getLogger(__name__)


class TileState(str, Enum):
    PENDING = "pending"
    REQUESTING = "requesting"
    RETRYING = "retrying"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Per-tile retry budget with exponential backoff.

    max_attempts=None retries until success: a tile that never comes back keeps
    its task (and the whole snapshot) alive forever unless a deadline is set.
    """

    max_attempts: Optional[int] = RETRY_MAX_ATTEMPTS or None
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 or None")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    @classmethod
    def unlimited(cls, base_delay: float = RETRY_BASE_DELAY, max_delay: float = RETRY_MAX_DELAY) -> "RetryPolicy":
        log.warning(
            "Unlimited tile retries requested: an unreachable tile will stall the snapshot"
        )
        return cls(max_attempts=None, base_delay=base_delay, max_delay=max_delay)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        return min(self.max_delay, self.base_delay * self.multiplier ** max(0, attempt - 1))

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


def build_http_client(
    max_connections: int = MAX_CONNECTIONS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    # no pool timeout: 400 tasks queue for a handful of connections
    timeout = httpx.Timeout(REQUEST_TIMEOUT, connect=CONNECT_TIMEOUT, pool=None)
    limits = httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_connections,
    )
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=timeout,
        limits=limits,
        transport=transport,
    )


async def fetch(client: httpx.AsyncClient, locator: str) -> bytes:
    """Single GET. Raises TransportError or HttpStatusError."""
    try:
        resp = await client.get(locator)
    except httpx.RequestError as exc:
        raise TransportError(f"{type(exc).__name__} for {locator}: {exc}") from exc

    if resp.status_code != 200:
        raise HttpStatusError(resp.status_code, locator)
    if not resp.content:
        raise TransportError(f"empty body for {locator}")
    return resp.content


class TileFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        coord: GridCoordinate,
        locator: str,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.client = client
        self.coord = coord
        self.locator = locator
        self.policy = policy or RetryPolicy()
        self.state = TileState.PENDING
        self.attempts = 0
        self.last_error: Optional[Exception] = None

    def _transition(self, state: TileState) -> None:
        log.debug("tile %s: %s -> %s", self.coord, self.state.value, state.value)
        self.state = state

    async def run(self) -> bytes:
        """
        Fetch the tile, retrying transport and status failures per the policy.

        Raises TileFetchFailed once the policy is exhausted.
        """
        while True:
            self._transition(TileState.REQUESTING)
            self.attempts += 1
            try:
                payload = await fetch(self.client, self.locator)
            except (TransportError, HttpStatusError) as exc:
                self.last_error = exc
                if self.policy.exhausted(self.attempts):
                    self._transition(TileState.FAILED)
                    log.error("Failure downloading %s after %d attempt(s): %s", self.locator, self.attempts, exc)
                    raise TileFetchFailed(self.coord, self.attempts, exc) from exc
                delay = self.policy.delay_for(self.attempts)
                self._transition(TileState.RETRYING)
                log.info("Retrying %s in %.2fs (attempt %d): %s", self.coord, delay, self.attempts, exc)
                await asyncio.sleep(delay)
                continue
            self._transition(TileState.DELIVERED)
            return payload
