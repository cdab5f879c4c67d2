"""
Lakehouse stack orchestration

Starts a Trino + Nessie + MinIO stack on an isolated network in dependency
order, loads SQL fixtures, exposes the dynamically bound endpoints and
tears everything down in reverse order:

    network -> (MinIO + Nessie) -> (bucket bootstrap + Trino) -> fixtures

Each parenthesised group runs concurrently and is joined before the next
stage begins. Startup failures raise StackStartupError naming the stage
and component. The stack never disposes itself on failure so that
containers stay available for inspection; dispose() is always safe to call.
"""

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .config import LakestackConfig
from .connections import connect_trino
from .containers import Container
from .errors import (
    BootstrapError,
    ContainerNotStartedError,
    LakestackError,
    StackStartupError,
)
from .models import ContainerSpec, Endpoints, StackState, unique_name
from .network import Network
from .runtime import ContainerRuntime
from .scripts import ScriptRunner, ScriptRunResult, discover_scripts
from .trino_config import (
    MINIO_ALIAS,
    MINIO_S3_PORT,
    NESSIE_ALIAS,
    NESSIE_PORT,
    TRINO_ALIAS,
    TRINO_PORT,
    trino_resource_mappings,
)
from .wait_strategies import HttpWaitStrategy, LogMessageWaitStrategy

logger = logging.getLogger(__name__)

MINIO_CONSOLE_PORT = 9001

# Trino answers HTTP before catalogs are registered; only this log line
# signals that queries against the iceberg catalog will succeed.
TRINO_STARTED_MESSAGE = "SERVER STARTED"

ConnectionFactory = Callable[[str, str, str, Optional[str]], Any]


class LakehouseStack:
    """
    One disposable Trino + Nessie + MinIO environment.

    Usage:
        stack = LakehouseStack(config)
        try:
            await stack.start()
            stack.execute_non_query("CREATE SCHEMA ...")
        finally:
            await stack.dispose()
    """

    def __init__(
        self,
        config: Optional[LakestackConfig] = None,
        runtime: Optional[ContainerRuntime] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        """
        Build the network and container handles. Nothing is started.

        Args:
            config: Stack configuration (defaults from environment)
            runtime: Container runtime client
            connection_factory: Opens query engine connections
                (endpoint, user, catalog, schema); defaults to trino.dbapi
        """
        self.config = config or LakestackConfig()
        self.runtime = runtime or ContainerRuntime(self.config)
        self.connection_factory = connection_factory or connect_trino
        self.state = StackState.NOT_STARTED
        self._start_requested = False

        self.network = Network(self.runtime)
        self.minio = self._container(self._build_minio_spec())
        self.nessie = self._container(self._build_nessie_spec())
        self.trino = self._container(self._build_trino_spec())

    def _container(self, spec: ContainerSpec) -> Container:
        return Container(
            spec,
            self.runtime,
            self.network.name,
            host=self.config.host,
            exec_timeout=self.config.exec_timeout,
        )

    def _build_minio_spec(self) -> ContainerSpec:
        return ContainerSpec(
            component="minio",
            name=unique_name("minio"),
            image=self.config.minio_image,
            network_alias=MINIO_ALIAS,
            ports=(MINIO_S3_PORT, MINIO_CONSOLE_PORT),
            environment={
                "MINIO_ROOT_USER": self.config.minio_root_user,
                "MINIO_ROOT_PASSWORD": self.config.minio_root_password,
            },
            command=("server", "/data", "--console-address", f":{MINIO_CONSOLE_PORT}"),
            wait_strategy=HttpWaitStrategy(
                port=MINIO_S3_PORT,
                path="/minio/health/live",
                timeout=self.config.minio_wait_timeout,
            ),
        )

    def _build_nessie_spec(self) -> ContainerSpec:
        return ContainerSpec(
            component="nessie",
            name=unique_name("nessie"),
            image=self.config.nessie_image,
            network_alias=NESSIE_ALIAS,
            ports=(NESSIE_PORT,),
            environment={
                "QUARKUS_PROFILE": "prod",
                "NESSIE_VERSION_STORE_TYPE": "IN_MEMORY",
            },
            wait_strategy=HttpWaitStrategy(
                port=NESSIE_PORT,
                path="/api/v2/config",
                timeout=self.config.nessie_wait_timeout,
            ),
        )

    def _build_trino_spec(self) -> ContainerSpec:
        return ContainerSpec(
            component="trino",
            name=unique_name("trino"),
            image=self.config.trino_image,
            network_alias=TRINO_ALIAS,
            ports=(TRINO_PORT,),
            resource_mappings=trino_resource_mappings(self.config),
            wait_strategy=LogMessageWaitStrategy(
                TRINO_STARTED_MESSAGE,
                timeout=self.config.trino_wait_timeout,
            ),
        )

    # -- lifecycle -----------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self.state == StackState.FIXTURES_LOADED

    def _advance(self, target: StackState) -> None:
        if not self.state.can_advance_to(target):
            raise LakestackError(
                f"Invalid stack transition {self.state.name} -> {target.name}"
            )
        logger.debug(f"Stack state: {self.state.name} -> {target.name}")
        self.state = target

    async def start(self) -> None:
        """
        Start the stack and load fixtures.

        Raises:
            StackStartupError: A stage failed; .stage and .component name it
            asyncio.CancelledError: The caller cancelled startup
        """
        if self._start_requested or self.state != StackState.NOT_STARTED:
            raise LakestackError("start() may only be called once per stack")
        self._start_requested = True

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        logger.info(f"Starting lakehouse stack on network {self.network.name}")

        await self._run_stage("network", "network", self.network.create())
        self._advance(StackState.NETWORK_READY)

        await self._join(
            "dependencies",
            [("minio", self.minio.start()), ("nessie", self.nessie.start())],
        )
        self._advance(StackState.DEPENDENCIES_READY)

        # Trino does not touch the bucket until the first query
        await self._join(
            "services",
            [
                ("minio", self.create_bucket(self.config.warehouse_bucket)),
                ("trino", self.trino.start()),
            ],
        )
        self._advance(StackState.SERVICE_READY)

        result = await self._run_stage("fixtures", "trino", self.load_fixtures())
        self._advance(StackState.FIXTURES_LOADED)

        logger.info(
            f"Lakehouse stack ready in {loop.time() - start_time:.1f}s "
            f"({result.statements_executed} fixture statements)"
        )

    async def _run_stage(self, stage: str, component: str, step: Awaitable) -> Any:
        try:
            return await step
        except Exception as e:
            logger.error(f"Stack startup failed at stage '{stage}' ({component}): {e}")
            raise StackStartupError(stage, component, e) from e

    async def _join(self, stage: str, members: List[Tuple[str, Awaitable]]) -> None:
        """
        Run members concurrently and wait for all of them.

        When one member fails, the others are cancelled and awaited before
        the failure is raised, so no task outlives the barrier.
        """
        tasks = [(component, asyncio.ensure_future(step)) for component, step in members]
        futures = [task for _, task in tasks]

        try:
            done, pending = await asyncio.wait(futures, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in futures:
                task.cancel()
            await asyncio.gather(*futures, return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for component, task in tasks:
            if task in done and task.cancelled():
                logger.warning(f"Stage '{stage}' member {component} was cancelled")
                raise asyncio.CancelledError()
            if task in done and task.exception() is not None:
                error = task.exception()
                logger.error(f"Stack startup failed at stage '{stage}' ({component}): {error}")
                raise StackStartupError(stage, component, error) from error

    async def create_bucket(self, bucket_name: str) -> None:
        """
        Create a bucket in object storage if it does not exist yet.

        Raises:
            BootstrapError: The mc command exited nonzero
        """
        command = " && ".join([
            shlex.join([
                "mc", "alias", "set", "local",
                f"http://localhost:{MINIO_S3_PORT}",
                self.config.minio_root_user,
                self.config.minio_root_password,
            ]),
            shlex.join(["mc", "mb", "--ignore-existing", f"local/{bucket_name}"]),
        ])

        result = await self.minio.exec(["sh", "-c", command])
        if not result.success:
            raise BootstrapError("minio", result)
        logger.info(f"Bucket ready: {bucket_name}")

    async def load_fixtures(self, scripts_path: Union[str, Path, None] = None) -> ScriptRunResult:
        """Discover and run create/ then insert/ fixture scripts on one connection."""
        root = Path(scripts_path) if scripts_path is not None else self.config.get_scripts_path()
        scripts = discover_scripts(root)
        runner = ScriptRunner(self.connect)
        worker = asyncio.ensure_future(asyncio.to_thread(runner.run, scripts))

        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; stop it and wait it out
            runner.cancel()
            try:
                await worker
            except Exception as e:
                logger.debug(f"Fixture worker stopped after cancellation: {e}")
            raise

    async def dispose(self) -> None:
        """
        Remove all containers in reverse start order, then the network.

        Safe to call in any state and more than once. Errors are logged per
        component and never raised, so every component gets its turn.
        """
        if self.state == StackState.DISPOSED:
            return

        self._advance(StackState.DISPOSING)
        logger.info("Disposing lakehouse stack")

        for container in (self.trino, self.nessie, self.minio):
            await self._dispose_component(container.component, container.dispose)
        await self._dispose_component("network", self.network.dispose)

        self._advance(StackState.DISPOSED)
        logger.info("Lakehouse stack disposed")

    async def _dispose_component(self, component: str, dispose: Callable[[], Awaitable]) -> None:
        try:
            await dispose()
        except Exception as e:
            logger.error(f"Error disposing {component}: {e}")

    async def collect_logs(self) -> Dict[str, str]:
        """Snapshot container logs, e.g. after a failed start."""
        logs = {}
        for container in (self.minio, self.nessie, self.trino):
            if container.status is None:
                continue
            try:
                logs[container.component] = await container.logs()
            except Exception as e:
                logs[container.component] = f"<unavailable: {e}>"
        return logs

    async def __aenter__(self) -> "LakehouseStack":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    # -- endpoints -----------------------------------------------------------

    def _endpoint(self, container: Container, port: int) -> str:
        if not container.running:
            raise ContainerNotStartedError(
                f"{container.component} endpoint is not available before it has started"
            )
        return container.endpoint(port)

    @property
    def storage_endpoint(self) -> str:
        """MinIO S3 API base URL."""
        return self._endpoint(self.minio, MINIO_S3_PORT)

    @property
    def storage_console_endpoint(self) -> str:
        return self._endpoint(self.minio, MINIO_CONSOLE_PORT)

    @property
    def catalog_endpoint(self) -> str:
        """Nessie API base URL."""
        return self._endpoint(self.nessie, NESSIE_PORT)

    @property
    def query_engine_endpoint(self) -> str:
        """Trino HTTP base URL."""
        return self._endpoint(self.trino, TRINO_PORT)

    def endpoints(self) -> Endpoints:
        return Endpoints(
            storage=self.storage_endpoint,
            catalog=self.catalog_endpoint,
            query_engine=self.query_engine_endpoint,
        )

    # -- query helpers -------------------------------------------------------

    def connect(self, schema: Optional[str] = None) -> Any:
        """
        Open a new query engine connection on the configured catalog.

        Connections are not safe for concurrent statements; use one
        connection per concurrent caller.
        """
        return self.connection_factory(
            self.query_engine_endpoint,
            self.config.trino_user,
            self.config.catalog_name,
            schema,
        )

    def execute_non_query(self, sql: str, schema: Optional[str] = None) -> int:
        """
        Execute a DDL or DML statement.

        Returns:
            Rows affected for DML, -1 when the engine reports none
        """
        if not sql or not sql.strip():
            raise ValueError("SQL statement cannot be empty")

        conn = self.connect(schema)
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(sql)
                cursor.fetchall()
                rowcount = cursor.rowcount
            finally:
                cursor.close()
        finally:
            conn.close()

        return rowcount if rowcount is not None and rowcount >= 0 else -1

    def execute_batch(self, statements: Iterable[str], schema: Optional[str] = None) -> int:
        """
        Execute statements one after another on a single connection.

        Returns:
            Number of statements executed
        """
        executed = 0
        conn = self.connect(schema)
        try:
            for statement in statements:
                ScriptRunner.execute(conn, statement)
                executed += 1
        finally:
            conn.close()
        return executed

    def query(self, sql: str, schema: Optional[str] = None) -> List[Any]:
        """Run a query and return all rows."""
        if not sql or not sql.strip():
            raise ValueError("SQL query cannot be empty")

        conn = self.connect(schema)
        try:
            return ScriptRunner.execute(conn, sql)
        finally:
            conn.close()

    async def run_cli_query(self, sql: str) -> str:
        """Run SQL through the Trino CLI inside the container and return its output."""
        if not sql or not sql.strip():
            raise ValueError("SQL query cannot be empty")

        result = await self.trino.exec(["trino", "--execute", sql])
        output = result.stdout
        if result.stderr:
            output += "\n" + result.stderr
        return output
