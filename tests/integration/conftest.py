"""
Integration test configuration and fixtures for Lakestack.

Starts one real lakehouse stack for the whole session. Skipped when no
container runtime is available.
"""

import subprocess
from pathlib import Path
from typing import Generator, Optional

import pytest

from lakestack.config import LakestackConfig
from lakestack.logging_config import setup_logging
from lakestack.session import StackSession

SCRIPTS_PATH = Path(__file__).parent / "Scripts"


def detect_container_runtime() -> Optional[str]:
    """
    Detect an available container runtime with a reachable daemon.

    Returns:
        'docker' or 'podman', or None if neither is available
    """
    for runtime in ("docker", "podman"):
        try:
            result = subprocess.run(
                [runtime, "info"], capture_output=True, text=True, timeout=10
            )
            if result.returncode == 0:
                return runtime
        except (subprocess.TimeoutExpired, FileNotFoundError):
            continue

    return None


@pytest.fixture(scope="session")
def container_runtime() -> str:
    runtime = detect_container_runtime()
    if runtime is None:
        pytest.skip("No container runtime (Docker or Podman) available for integration tests")
    return runtime


@pytest.fixture(scope="session")
def integration_config(container_runtime: str, test_logs_dir: str) -> LakestackConfig:
    config = LakestackConfig(
        container_runtime=container_runtime,
        scripts_path=str(SCRIPTS_PATH),
        log_dir=test_logs_dir,
        exec_timeout=120,
    )
    setup_logging(log_dir=config.log_dir, verbose=config.verbose, log_level=config.log_level)
    return config


@pytest.fixture(scope="session")
def lakehouse_session(integration_config: LakestackConfig) -> Generator[StackSession, None, None]:
    """
    One stack for the whole test run.

    Startup failures are reported with container logs attached; the stack
    is disposed at session end in every case.
    """
    session = StackSession(integration_config)
    try:
        try:
            session.start()
        except Exception:
            logs = session.run(session.stack.collect_logs())
            for component, output in logs.items():
                print(f"----- {component} logs -----\n{output[-4000:]}")
            raise

        yield session
    finally:
        session.close()


@pytest.fixture
def lakehouse(lakehouse_session: StackSession):
    """The running stack."""
    return lakehouse_session.stack
