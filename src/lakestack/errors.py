"""
Exception hierarchy for Lakestack

Startup failures are raised as LakestackError subclasses naming the
component (and, at the stack boundary, the stage) that failed.
Cancellation is never represented here: asyncio.CancelledError is
propagated unchanged so callers can tell it apart from a timeout.
"""

from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ExecResult


class LakestackError(Exception):
    """Base exception for Lakestack errors."""
    pass


class ContainerOperationError(LakestackError):
    """A container runtime command exited with a nonzero status."""

    def __init__(
        self,
        operation: str,
        message: str,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        context: Optional[Dict[str, str]] = None,
    ):
        self.operation = operation
        self.message = message
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.context = context or {}
        super().__init__(f"{operation} failed: {message}")

    def get_detailed_message(self) -> str:
        """Get detailed error message including captured output."""
        lines = [f"{self.operation} failed: {self.message}"]
        if self.exit_code is not None:
            lines.append(f"Exit code: {self.exit_code}")
        for key, value in self.context.items():
            lines.append(f"{key}: {value}")
        if self.stdout.strip():
            lines.append(f"Stdout: {self.stdout.strip()}")
        if self.stderr.strip():
            lines.append(f"Stderr: {self.stderr.strip()}")
        return "\n".join(lines)


class ContainerNotStartedError(LakestackError):
    """Port or endpoint requested before the container finished starting."""
    pass


class WaitStrategyTimeoutError(LakestackError):
    """A container did not become ready within its wait strategy timeout."""

    def __init__(self, component: str, strategy: str, timeout: float, last_error: str = ""):
        self.component = component
        self.strategy = strategy
        self.timeout = timeout
        self.last_error = last_error
        message = f"{component} not ready after {timeout:g} seconds ({strategy})"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)


class ExecTimeoutError(LakestackError):
    """An exec call ran past its configured timeout."""

    def __init__(self, component: str, command: List[str], timeout: float):
        self.component = component
        self.command = command
        self.timeout = timeout
        super().__init__(
            f"Command in {component} did not finish within {timeout:g} seconds: "
            f"{' '.join(command)}"
        )


class BootstrapError(LakestackError):
    """A bootstrap command inside a container exited with a nonzero status."""

    def __init__(self, component: str, result: "ExecResult"):
        self.component = component
        self.result = result
        super().__init__(
            f"{component} bootstrap failed with exit code {result.exit_code}. "
            f"Stdout: {result.stdout.strip()}\nStderr: {result.stderr.strip()}"
        )


class ScriptExecutionError(LakestackError):
    """A fixture statement failed; names the source file and the statement."""

    def __init__(self, script: str, statement: str, cause: Exception):
        self.script = script
        self.statement = statement
        self.cause = cause
        super().__init__(
            f"Fixture script {script} failed: {cause}\nStatement: {statement}"
        )


class StackStartupError(LakestackError):
    """Fatal stack startup failure attributed to a stage and component."""

    def __init__(self, stage: str, component: str, cause: Exception):
        self.stage = stage
        self.component = component
        self.cause = cause
        super().__init__(f"Stack startup failed at stage '{stage}' ({component}): {cause}")


class FixturesCancelledError(LakestackError):
    """Fixture loading stopped early because the caller cancelled it."""

    def __init__(self, script: str, statements_executed: int):
        self.script = script
        self.statements_executed = statements_executed
        super().__init__(
            f"Fixture loading cancelled at {script} after "
            f"{statements_executed} statement(s)"
        )
