"""
Mock container operations for testing

Provides a mock container runtime and a fake DB-API connection that
simulate real behavior without a container runtime or query engine.
"""

import asyncio
import itertools
import threading
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from lakestack.errors import ContainerOperationError
from lakestack.logging_config import SubprocessLogHandler
from lakestack.models import ContainerSpec, ExecResult
from lakestack.runtime import ContainerRuntime


def component_of(name: str) -> str:
    """minio-<hex> -> minio"""
    return name.split("-", 1)[0]


class MockContainerRuntime(ContainerRuntime):
    """Mock runtime recording every operation in call order."""

    def __init__(self, config, log_handler=None):
        super().__init__(
            config,
            log_handler or SubprocessLogHandler("mock_runtime", config.log_dir, to_file=False),
        )
        self.calls: List[Tuple[str, str]] = []
        self.networks: List[str] = []
        self.containers: Dict[str, ContainerSpec] = {}
        self.copied: Dict[str, Dict[str, bytes]] = {}
        self.removed: List[str] = []
        self.exec_commands: List[Tuple[str, List[str]]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.delays: Dict[Tuple[str, str], float] = {}
        self.exec_handlers: Dict[str, Callable[[List[str]], ExecResult]] = {}
        self.log_lines: Dict[str, List[str]] = {"trino": ["Starting", "SERVER STARTED"]}
        self._ports = itertools.count(41000)

    def set_failure(self, operation: str, component: str, error: Optional[Exception] = None):
        """Force an operation on a component ('network' for networks) to fail."""
        self.failures[(operation, component)] = error or ContainerOperationError(
            operation, f"mock {operation} failure for {component}", exit_code=1
        )

    def set_delay(self, operation: str, component: str, seconds: float):
        """Make an operation on a component take a while."""
        self.delays[(operation, component)] = seconds

    async def _simulate(self, operation: str, name: str) -> None:
        component = component_of(name)
        self.calls.append((operation, name))
        delay = self.delays.get((operation, component))
        if delay:
            await asyncio.sleep(delay)
        error = self.failures.get((operation, component))
        if error is not None:
            raise error

    def operations_for(self, component: str) -> List[str]:
        return [op for op, name in self.calls if component_of(name) == component]

    def index_of(self, operation: str, component: str) -> int:
        for index, (op, name) in enumerate(self.calls):
            if op == operation and component_of(name) == component:
                return index
        raise AssertionError(f"{operation} on {component} was never called")

    async def create_network(self, network_name: str) -> None:
        await self._simulate("network_create", network_name)
        self.networks.append(network_name)

    async def remove_network(self, network_name: str) -> None:
        await self._simulate("network_rm", network_name)
        self.networks.remove(network_name)

    async def create_container(self, spec: ContainerSpec, network_name: str) -> str:
        await self._simulate("create", spec.name)
        self.containers[spec.name] = spec
        return f"id-{spec.name}"

    async def copy_to_container(self, container_name, content, target, mode=0o644):
        await self._simulate("cp", container_name)
        self.copied.setdefault(container_name, {})[target] = content

    async def start_container(self, container_name: str) -> None:
        await self._simulate("start", container_name)

    async def port(self, container_name: str, internal_port: int) -> int:
        await self._simulate("port", container_name)
        return next(self._ports)

    async def exec(self, container_name, command, timeout=None) -> ExecResult:
        await self._simulate("exec", container_name)
        self.exec_commands.append((container_name, list(command)))
        handler = self.exec_handlers.get(component_of(container_name))
        if handler is not None:
            return handler(list(command))
        return ExecResult(command=list(command), exit_code=0, stdout="ok")

    async def logs(self, container_name: str) -> str:
        return "\n".join(self.log_lines.get(component_of(container_name), []))

    @asynccontextmanager
    async def follow_logs(self, container_name: str):
        lines = list(self.log_lines.get(component_of(container_name), []))

        async def iterate():
            for line in lines:
                yield line

        yield iterate()

    async def remove_container(self, container_name: str) -> None:
        await self._simulate("rm", container_name)
        self.removed.append(container_name)


class FakeCursor:
    """DB-API cursor recording statements on its connection."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.rowcount = -1
        self.closed = False
        self.cancelled = threading.Event()

    def execute(self, statement: str) -> None:
        for marker in self.connection.block_on:
            if marker in statement:
                # Hold the statement like a long running query until cancel()
                self.connection.blocked.set()
                if self.cancelled.wait(timeout=5):
                    raise RuntimeError(f"Query was cancelled: {marker}")
        for marker in self.connection.fail_on:
            if marker in statement:
                raise RuntimeError(f"mock query failure: {marker}")
        self.connection.executed.append(statement)
        self.rowcount = self.connection.rowcount

    def fetchall(self) -> List[Any]:
        return list(self.connection.rows)

    def cancel(self) -> None:
        self.cancelled.set()

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """DB-API connection that never talks to a server."""

    def __init__(self, rows=None, rowcount: int = -1, fail_on=(), block_on=()):
        self.rows = rows or []
        self.rowcount = rowcount
        self.fail_on = list(fail_on)
        self.block_on = list(block_on)
        self.blocked = threading.Event()
        self.executed: List[str] = []
        self.cursors: List[FakeCursor] = []
        self.closed = False

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """Connection factory matching connect_trino's signature."""

    def __init__(self, **connection_kwargs):
        self.connection_kwargs = connection_kwargs
        self.connections: List[FakeConnection] = []
        self.requests: List[Tuple[str, str, str, Optional[str]]] = []

    def __call__(self, endpoint, user, catalog, schema=None) -> FakeConnection:
        self.requests.append((endpoint, user, catalog, schema))
        connection = FakeConnection(**self.connection_kwargs)
        self.connections.append(connection)
        return connection

    @property
    def executed(self) -> List[str]:
        return [statement for conn in self.connections for statement in conn.executed]
