"""Submit-then-poll state machine shared by backend clients.

A poll attempt yields one of three outcomes: still running, succeeded with
a payload, or failed with backend-supplied detail. The poller keeps asking
at a fixed interval until a terminal outcome or the attempt ceiling.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from docroute.errors import BackendAnalysisError, BackendTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0
MAX_POLL_ATTEMPTS = 120


class PollStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PollResult:
    """Outcome of a single poll request."""

    status: PollStatus
    payload: dict[str, Any] = field(default_factory=dict)
    error: str = ""

    @classmethod
    def running(cls) -> "PollResult":
        return cls(PollStatus.RUNNING)

    @classmethod
    def succeeded(cls, payload: dict[str, Any]) -> "PollResult":
        return cls(PollStatus.SUCCEEDED, payload=payload)

    @classmethod
    def failed(cls, error: str) -> "PollResult":
        return cls(PollStatus.FAILED, error=error or "Unknown error")


class Poller:
    """Fixed-interval poll loop with an attempt ceiling.

    The same state machine drives a blocking loop (``run``) and a coroutine
    (``run_async``). In the coroutine the wait between attempts is an
    ``asyncio.sleep``, so other tasks keep running and cancellation takes
    effect at the next await.
    """

    def __init__(
        self,
        backend: str,
        interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backend = backend
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._async_sleep = async_sleep

    def _resolve(self, result: PollResult, attempt: int) -> Optional[dict[str, Any]]:
        """Return the payload on success, None while running, raise on failure."""
        if result.status == PollStatus.SUCCEEDED:
            logger.debug(f"{self.backend}: analysis succeeded after {attempt} poll(s)")
            return result.payload
        if result.status == PollStatus.FAILED:
            raise BackendAnalysisError(
                f"{self.backend} analysis failed: {result.error}",
                detail=result.error,
                backend=self.backend,
            )
        logger.debug(f"{self.backend}: poll {attempt}/{self.max_attempts} still running")
        return None

    def _timeout(self) -> BackendTimeoutError:
        return BackendTimeoutError(
            f"{self.backend} analysis timed out after {self.max_attempts} poll attempts",
            backend=self.backend,
        )

    def run(self, poll_once: Callable[[], PollResult]) -> dict[str, Any]:
        """Poll until a terminal outcome, blocking between attempts."""
        for attempt in range(1, self.max_attempts + 1):
            payload = self._resolve(poll_once(), attempt)
            if payload is not None:
                return payload
            if attempt < self.max_attempts:
                self._sleep(self.interval)
        raise self._timeout()

    async def run_async(
        self,
        poll_once: Callable[[], Awaitable[PollResult]],
    ) -> dict[str, Any]:
        """Poll until a terminal outcome, suspending between attempts."""
        for attempt in range(1, self.max_attempts + 1):
            payload = self._resolve(await poll_once(), attempt)
            if payload is not None:
                return payload
            if attempt < self.max_attempts:
                await self._async_sleep(self.interval)
        raise self._timeout()
