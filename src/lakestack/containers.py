"""
Container handles for Lakestack

A Container wraps one ContainerSpec and the runtime process created from
it: start with ephemeral port bindings and injected files, readiness wait,
exec, file copy, dynamic endpoint resolution and best-effort disposal.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from .errors import ContainerNotStartedError, ExecTimeoutError
from .models import ContainerSpec, ContainerStatus, ExecResult
from .runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class Container:
    """
    Handle for one managed service container.

    Mapped ports are written exactly once by start() and read-only
    afterwards. Endpoints are recomputed from them on every call.
    """

    def __init__(
        self,
        spec: ContainerSpec,
        runtime: ContainerRuntime,
        network_name: str,
        host: str = "localhost",
        exec_timeout: Optional[float] = None,
    ):
        """
        Initialize container handle.

        Args:
            spec: Immutable container description
            runtime: Container runtime client
            network_name: Network to attach to
            host: Host name used to reach published ports
            exec_timeout: Default exec bound in seconds (None waits until cancelled)
        """
        self.spec = spec
        self.runtime = runtime
        self.network_name = network_name
        self.host = host
        self.exec_timeout = exec_timeout
        self.status: Optional[ContainerStatus] = None
        self._mapped_ports: Dict[int, int] = {}
        self._create_attempted = False

    @property
    def component(self) -> str:
        return self.spec.component

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def running(self) -> bool:
        return self.status == ContainerStatus.RUNNING

    async def start(self) -> None:
        """
        Create, configure, start and wait for the container.

        Resource mappings are copied in before the process starts. Blocks
        until the container's wait strategy succeeds.

        Raises:
            ContainerOperationError: A runtime command failed
            WaitStrategyTimeoutError: The container did not become ready
            asyncio.CancelledError: The caller cancelled the start
        """
        if self.status is not None:
            raise RuntimeError(f"{self.component} container has already been started")

        logger.info(f"Starting container: {self.name} from {self.spec.image}")
        self.status = ContainerStatus.STARTING
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        try:
            self._create_attempted = True
            await self.runtime.create_container(self.spec, self.network_name)
            self.status = ContainerStatus.CREATED

            for mapping in self.spec.resource_mappings:
                await self.runtime.copy_to_container(
                    self.name, mapping.content, mapping.target, mapping.mode
                )
                logger.debug(f"Copied {len(mapping.content)} bytes to {self.name}:{mapping.target}")

            await self.runtime.start_container(self.name)
            self.status = ContainerStatus.STARTING

            ports = {}
            for port in self.spec.ports:
                ports[port] = await self.runtime.port(self.name, port)
            self._mapped_ports = ports
            logger.debug(f"{self.component} port bindings: {ports}")

            await self.spec.wait_strategy.wait_until_ready(self)

        except asyncio.CancelledError:
            self.status = ContainerStatus.FAILED
            logger.warning(f"Start of {self.component} cancelled")
            raise
        except Exception as e:
            self.status = ContainerStatus.FAILED
            logger.error(f"Failed to start {self.component} ({self.name}): {e}")
            raise

        self.status = ContainerStatus.RUNNING
        logger.info(
            f"Container {self.component} started in {loop.time() - start_time:.1f}s"
        )

    def mapped_port(self, internal_port: int) -> int:
        """
        Get the host port bound to a container port.

        Raises:
            ContainerNotStartedError: Ports are not bound yet
        """
        try:
            return self._mapped_ports[internal_port]
        except KeyError:
            raise ContainerNotStartedError(
                f"Port {internal_port} of {self.component} is not mapped; "
                f"the container has not been started"
            )

    def endpoint(self, internal_port: int, scheme: str = "http") -> str:
        """Build scheme://host:mapped-port for a container port."""
        return f"{scheme}://{self.host}:{self.mapped_port(internal_port)}"

    async def exec(self, command: List[str], timeout: Optional[float] = None) -> ExecResult:
        """
        Run a one-shot command inside the running container.

        Args:
            command: argv to execute
            timeout: Seconds before giving up (defaults to exec_timeout)

        Returns:
            ExecResult with exit code and captured stdout/stderr

        Raises:
            ExecTimeoutError: The command outlived the timeout
        """
        timeout = timeout if timeout is not None else self.exec_timeout
        try:
            result = await self.runtime.exec(self.name, command, timeout=timeout)
        except asyncio.TimeoutError:
            raise ExecTimeoutError(self.component, command, timeout)

        logger.debug(f"{self.component} exec: {result.get_summary()}")
        return result

    async def copy_file(self, content: bytes, target: str, mode: int = 0o644) -> None:
        """Copy bytes to an absolute path inside the container."""
        await self.runtime.copy_to_container(self.name, content, target, mode)
        logger.debug(f"Copied {len(content)} bytes to {self.name}:{target}")

    async def logs(self) -> str:
        """Snapshot of the container's combined log output."""
        return await self.runtime.logs(self.name)

    @asynccontextmanager
    async def follow_logs(self) -> AsyncIterator[AsyncIterator[str]]:
        async with self.runtime.follow_logs(self.name) as lines:
            yield lines

    async def dispose(self) -> None:
        """Stop and remove the container. Idempotent; never raises."""
        if self.status == ContainerStatus.DISPOSED:
            return
        if not self._create_attempted:
            self.status = ContainerStatus.DISPOSED
            return

        try:
            await self.runtime.remove_container(self.name)
            logger.info(f"{self.component} container disposed successfully")
        except Exception as e:
            logger.warning(f"Error disposing {self.component} container {self.name}: {e}")
            return

        self.status = ContainerStatus.DISPOSED
