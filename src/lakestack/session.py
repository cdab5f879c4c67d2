"""
Shared stack for a whole test run

StackSession owns one LakehouseStack and the event loop it runs on. It is
started once and closed once, typically from a session-scoped pytest
fixture:

    @pytest.fixture(scope="session")
    def lakehouse():
        session = StackSession(load_config())
        session.start()
        yield session
        session.close()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .config import LakestackConfig
from .errors import LakestackError
from .stack import LakehouseStack

logger = logging.getLogger(__name__)

# Schema created by fixture scripts and shared by every test in the run
COMMON_SCHEMA = "common_test_data"


class StackSession:
    """Single-initialisation, single-teardown holder of one stack."""

    COMMON_SCHEMA = COMMON_SCHEMA

    def __init__(
        self,
        config: Optional[LakestackConfig] = None,
        stack_factory: Optional[Callable[[LakestackConfig], LakehouseStack]] = None,
    ):
        self.config = config or LakestackConfig()
        self.stack_factory = stack_factory or LakehouseStack
        self._stack: Optional[LakehouseStack] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._started = False
        self._closed = False

    @property
    def stack(self) -> LakehouseStack:
        if self._stack is None:
            raise LakestackError("Stack session has not been started")
        return self._stack

    def start(self) -> LakehouseStack:
        """
        Create and start the stack.

        A failed start leaves the stack in place so close() can still
        dispose whatever was created.

        Raises:
            LakestackError: start() was already called
            StackStartupError: The stack failed to start
        """
        if self._started:
            raise LakestackError("Stack session can only be started once")
        self._started = True

        self._loop = asyncio.new_event_loop()
        self._stack = self.stack_factory(self.config)
        logger.info("Starting shared lakehouse stack")
        self._loop.run_until_complete(self._stack.start())
        return self._stack

    def run(self, coro: Awaitable[Any]) -> Any:
        """Run a coroutine on the session loop, e.g. stack.run_cli_query()."""
        if self._loop is None or self._closed:
            raise LakestackError("Stack session is not running")
        return self._loop.run_until_complete(coro)

    def close(self) -> None:
        """Dispose the stack and close the loop. Later calls are no-ops."""
        if self._closed:
            return
        self._closed = True

        if self._loop is None:
            return

        try:
            if self._stack is not None:
                self._loop.run_until_complete(self._stack.dispose())
            self._loop.run_until_complete(self._loop.shutdown_default_executor())
        finally:
            self._loop.close()
            logger.info("Shared lakehouse stack closed")
