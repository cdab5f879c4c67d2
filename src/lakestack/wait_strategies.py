"""
Readiness wait strategies for Lakestack containers

A wait strategy polls a started container until a readiness predicate
holds or its timeout elapses. Two variants exist: an HTTP check against
a mapped port and a log-line match on the container's output. New
variants subclass WaitStrategy and implement _wait().
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Optional

import aiohttp

from .errors import WaitStrategyTimeoutError

if TYPE_CHECKING:
    from .containers import Container

logger = logging.getLogger(__name__)


class WaitStrategy(ABC):
    """Base class for readiness checks with an overall timeout."""

    def __init__(
        self,
        timeout: float = 60.0,
        poll_interval: float = 0.5,
        max_poll_interval: float = 5.0,
    ):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_poll_interval = max_poll_interval

    async def wait_until_ready(self, container: "Container") -> None:
        """
        Block until the container is ready.

        Raises:
            WaitStrategyTimeoutError: Readiness not reached within the timeout
            asyncio.CancelledError: The caller cancelled the wait
        """
        state: Dict[str, str] = {}
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        logger.info(f"Waiting for {container.component}: {self.describe()}")

        try:
            await asyncio.wait_for(self._wait(container, state), self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"{container.component} not ready after {self.timeout:g}s: "
                f"{state.get('last_error', 'no response')}"
            )
            raise WaitStrategyTimeoutError(
                container.component,
                self.describe(),
                self.timeout,
                state.get("last_error", ""),
            )

        logger.info(
            f"{container.component} is ready ({loop.time() - start_time:.1f}s)"
        )

    def _next_delay(self, delay: float) -> float:
        return min(delay * 2, self.max_poll_interval)

    @abstractmethod
    async def _wait(self, container: "Container", state: Dict[str, str]) -> None:
        """Poll until ready; record the latest failure reason in state['last_error']."""

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable description used in logs and errors."""


class HttpWaitStrategy(WaitStrategy):
    """Wait until an HTTP GET against a mapped port returns an accepted status."""

    def __init__(
        self,
        port: int,
        path: str = "/",
        status_codes: Optional[Iterable[int]] = None,
        timeout: float = 60.0,
        poll_interval: float = 0.5,
        max_poll_interval: float = 5.0,
        request_timeout: float = 5.0,
    ):
        super().__init__(timeout, poll_interval, max_poll_interval)
        self.port = port
        self.path = path if path.startswith("/") else f"/{path}"
        self.status_codes = frozenset(status_codes) if status_codes else None
        self.request_timeout = request_timeout

    def is_accepted(self, status: int) -> bool:
        """2xx unless explicit status codes were given."""
        if self.status_codes is not None:
            return status in self.status_codes
        return 200 <= status < 300

    def request_timeout_within(self, remaining: float) -> aiohttp.ClientTimeout:
        """Timeout for one request, never past the overall deadline."""
        return aiohttp.ClientTimeout(total=max(min(self.request_timeout, remaining), 0.001))

    def describe(self) -> str:
        return f"HTTP GET {self.path} on port {self.port}"

    async def _wait(self, container: "Container", state: Dict[str, str]) -> None:
        url = f"{container.endpoint(self.port)}{self.path}"
        delay = self.poll_interval
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        async with aiohttp.ClientSession() as session:
            while True:
                timeout = self.request_timeout_within(deadline - loop.time())
                try:
                    async with session.get(url, timeout=timeout) as response:
                        if self.is_accepted(response.status):
                            logger.debug(f"{url} returned {response.status}")
                            return
                        state["last_error"] = f"HTTP {response.status} from {url}"
                except aiohttp.ClientError as e:
                    state["last_error"] = f"{type(e).__name__}: {e}"
                except asyncio.TimeoutError:
                    state["last_error"] = f"request to {url} timed out"

                logger.debug(f"{container.component} not ready: {state['last_error']}")
                await asyncio.sleep(delay)
                delay = self._next_delay(delay)


class LogMessageWaitStrategy(WaitStrategy):
    """Wait until a line of the container's combined log contains a message."""

    def __init__(
        self,
        message: str,
        timeout: float = 60.0,
        poll_interval: float = 0.5,
        max_poll_interval: float = 5.0,
    ):
        super().__init__(timeout, poll_interval, max_poll_interval)
        if not message:
            raise ValueError("message must not be empty")
        self.message = message

    def describe(self) -> str:
        return f"log message {self.message!r}"

    async def _wait(self, container: "Container", state: Dict[str, str]) -> None:
        delay = self.poll_interval
        while True:
            async with container.follow_logs() as lines:
                async for line in lines:
                    if self.message in line:
                        return

            # The follow stream ends when the container stops; re-attach until timeout
            state["last_error"] = "log stream ended before the message appeared"
            logger.debug(f"{container.component}: {state['last_error']}")
            await asyncio.sleep(delay)
            delay = self._next_delay(delay)
