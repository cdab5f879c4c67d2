"""
Container runtime client for Lakestack

Drives the docker or podman CLI asynchronously. Every call is a
suspension point; child processes are killed when the awaiting task is
cancelled or a timeout expires, so no runtime process outlives its caller.
"""

import asyncio
import io
import logging
import tarfile
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from .config import LakestackConfig
from .errors import ContainerOperationError
from .logging_config import SubprocessLogHandler
from .models import ContainerSpec, ExecResult

logger = logging.getLogger(__name__)

# Log lines from JVM services can be long
STREAM_LIMIT = 1024 * 1024


def parse_port_output(output: str) -> int:
    """
    Parse the host port out of `<runtime> port <name> <port>/tcp` output.

    Output holds one binding per line, e.g. ``0.0.0.0:49153`` and
    ``[::]:49153``. IPv4 bindings are preferred.

    Raises:
        ValueError: If no binding is present
    """
    ipv4_ports = []
    other_ports = []
    for line in output.splitlines():
        line = line.strip()
        if not line or ":" not in line:
            continue
        host, _, port = line.rpartition(":")
        if not port.isdigit():
            continue
        if host.startswith("["):
            other_ports.append(int(port))
        else:
            ipv4_ports.append(int(port))

    ports = ipv4_ports or other_ports
    if not ports:
        raise ValueError(f"No port binding found in output: {output!r}")
    return ports[0]


def build_tar_archive(content: bytes, target: str, mode: int = 0o644) -> bytes:
    """Pack bytes into a tar stream rooted at / for `<runtime> cp -`."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        info = tarfile.TarInfo(name=target.lstrip("/"))
        info.size = len(content)
        info.mode = mode
        info.mtime = int(time.time())
        archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill a child process if it is still running and reap it."""
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


class ContainerRuntime:
    """
    Client for the container management CLI.

    Provides network, container, exec, copy and log operations used by
    the network and container handles.
    """

    def __init__(
        self,
        config: LakestackConfig,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        """Initialize runtime client with configuration."""
        self.config = config
        self.container_runtime = config.container_runtime
        self.log_handler = log_handler or SubprocessLogHandler(
            "container_runtime", config.log_dir
        )

    async def run(
        self,
        args: List[str],
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> ExecResult:
        """
        Run a runtime CLI command.

        Args:
            args: Arguments after the runtime executable
            stdin: Bytes to feed to the command's standard input
            timeout: Seconds before the command is killed (None waits forever)
            check: Raise ContainerOperationError on nonzero exit

        Returns:
            ExecResult with exit code and decoded output

        Raises:
            ContainerOperationError: Runtime missing, or nonzero exit with check
            asyncio.TimeoutError: The timeout expired (process is killed)
            asyncio.CancelledError: The caller was cancelled (process is killed)
        """
        cmd = [self.container_runtime, *args]
        self.log_handler.log_command(cmd)
        logger.debug(f"Runtime command: {' '.join(cmd[:3])} ...")

        start_time = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ContainerOperationError(
                operation=args[0] if args else "run",
                message=f"Container runtime '{self.container_runtime}' not found: {e}",
            )

        try:
            if timeout is None:
                stdout, stderr = await process.communicate(stdin)
            else:
                stdout, stderr = await asyncio.wait_for(process.communicate(stdin), timeout)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            await _terminate(process)
            elapsed = time.monotonic() - start_time
            self.log_handler.log_completion(-1, elapsed)
            raise

        elapsed = time.monotonic() - start_time
        result = ExecResult(
            command=cmd,
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
            stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
            runtime_seconds=elapsed,
        )

        self.log_handler.log_output(result.stdout)
        self.log_handler.log_output(result.stderr, logging.WARNING)
        self.log_handler.log_completion(result.exit_code, elapsed)

        if check and not result.success:
            raise ContainerOperationError(
                operation=" ".join(args[:2]),
                message=result.stderr.strip() or f"exit code {result.exit_code}",
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    async def create_network(self, network_name: str) -> None:
        """Create an isolated bridge network."""
        await self.run(["network", "create", "--label", "lakestack=true", network_name])

    async def remove_network(self, network_name: str) -> None:
        """Remove a network."""
        await self.run(["network", "rm", network_name])

    async def create_container(self, spec: ContainerSpec, network_name: str) -> str:
        """
        Create (but do not start) a container from its spec.

        Each declared port is published to an OS-chosen ephemeral host port.

        Returns:
            Container ID
        """
        cmd = [
            "create",
            "--name",
            spec.name,
            "--label",
            "lakestack=true",
            "--network",
            network_name,
            "--network-alias",
            spec.network_alias,
        ]

        for port in spec.ports:
            cmd.extend(["-p", str(port)])

        for env_name, env_value in spec.environment.items():
            cmd.extend(["-e", f"{env_name}={env_value}"])

        cmd.append(spec.image)

        if spec.command:
            cmd.extend(spec.command)

        result = await self.run(cmd)
        container_id = result.stdout.strip()
        logger.debug(f"Created container {spec.name}: {container_id[:12]}")
        return container_id

    async def copy_to_container(
        self, container_name: str, content: bytes, target: str, mode: int = 0o644
    ) -> None:
        """Write bytes to an absolute path inside a container."""
        archive = build_tar_archive(content, target, mode)
        await self.run(["cp", "-", f"{container_name}:/"], stdin=archive)

    async def start_container(self, container_name: str) -> None:
        """Start a created container."""
        await self.run(["start", container_name])

    async def port(self, container_name: str, internal_port: int) -> int:
        """Resolve the host port bound to a container port."""
        result = await self.run(["port", container_name, f"{internal_port}/tcp"])
        try:
            return parse_port_output(result.stdout)
        except ValueError as e:
            raise ContainerOperationError(
                operation="port",
                message=str(e),
                context={"container_name": container_name, "port": str(internal_port)},
            )

    async def exec(
        self, container_name: str, command: List[str], timeout: Optional[float] = None
    ) -> ExecResult:
        """Run a one-shot command in a running container; never checks the exit code."""
        return await self.run(["exec", container_name, *command], timeout=timeout, check=False)

    async def logs(self, container_name: str) -> str:
        """Get the combined log output of a container."""
        result = await self.run(["logs", container_name], check=False)
        return result.stdout + result.stderr

    @asynccontextmanager
    async def follow_logs(self, container_name: str) -> AsyncIterator[AsyncIterator[str]]:
        """
        Follow the combined log stream of a container.

        Yields an async iterator of decoded lines. The follow process is
        killed when the context exits, whether by match, error or cancellation.
        """
        cmd = [self.container_runtime, "logs", "--follow", container_name]
        self.log_handler.log_command(cmd)
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            limit=STREAM_LIMIT,
        )

        async def lines() -> AsyncIterator[str]:
            async for raw in process.stdout:
                yield raw.decode("utf-8", errors="replace").rstrip("\r\n")

        try:
            yield lines()
        finally:
            await _terminate(process)

    async def remove_container(self, container_name: str) -> None:
        """Force-remove a container and its anonymous volumes."""
        await self.run(["rm", "-f", "-v", container_name])

