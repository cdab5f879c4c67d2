"""
Data models for Lakestack

Defines container descriptors, exec results and lifecycle states
shared by the runtime client, container handles and the stack controller.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .wait_strategies import WaitStrategy


class StackState(Enum):
    """Lifecycle states of a stack, in forward order."""

    NOT_STARTED = 0
    NETWORK_READY = 1
    DEPENDENCIES_READY = 2
    SERVICE_READY = 3
    FIXTURES_LOADED = 4
    DISPOSING = 5
    DISPOSED = 6

    def can_advance_to(self, target: "StackState") -> bool:
        """Transitions only move forward; DISPOSING is reachable from anywhere."""
        if target is StackState.DISPOSING:
            return self is not StackState.DISPOSED
        return target.value > self.value


class ContainerStatus(Enum):
    """Status values for a managed container."""

    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    DISPOSED = "disposed"


def unique_name(prefix: str) -> str:
    """Generate a process-unique container or network name."""
    return f"{prefix}-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ResourceMapping:
    """Bytes written to a path inside a container before it starts."""

    content: bytes
    target: str
    mode: int = 0o644


@dataclass(frozen=True)
class ContainerSpec:
    """Immutable description of one managed service container."""

    component: str
    name: str
    image: str
    network_alias: str
    wait_strategy: "WaitStrategy"
    ports: Tuple[int, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)
    command: Optional[Tuple[str, ...]] = None
    resource_mappings: Tuple[ResourceMapping, ...] = ()


@dataclass
class ExecResult:
    """Result of a command run through the container runtime."""

    command: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    runtime_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def get_summary(self) -> str:
        """Get a summary string for the command result."""
        status = "✅ SUCCESS" if self.success else f"❌ FAILED (exit {self.exit_code})"
        timing = f" ({self.runtime_seconds:.1f}s)" if self.runtime_seconds > 0 else ""
        return f"{status}: {' '.join(self.command)}{timing}"


@dataclass(frozen=True)
class Endpoints:
    """Host-reachable base URLs of a started stack."""

    storage: str
    catalog: str
    query_engine: str
