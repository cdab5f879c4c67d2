"""
Shared fixtures for Lakestack tests.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from lakestack.config import LakestackConfig


@pytest.fixture(scope="session")
def test_logs_dir() -> Generator[str, None, None]:
    """Session-wide log directory, removed after the run."""
    temp_dir = tempfile.mkdtemp(prefix="lakestack_test_logs_")
    logs_dir = Path(temp_dir) / "logs"
    (logs_dir / "containers").mkdir(parents=True)

    yield str(logs_dir)

    shutil.rmtree(temp_dir)


@pytest.fixture
def isolated_test_env(test_logs_dir: str) -> Generator[dict[str, str], None, None]:
    """
    Run the test with only test LAKESTACK_* variables set.

    Yields the original environment, which is restored afterwards.
    """
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("LAKESTACK_"):
            del os.environ[key]
    os.environ.update({
        "LAKESTACK_LOG_DIR": test_logs_dir,
        "LAKESTACK_LOG_LEVEL": "DEBUG",
        "LAKESTACK_VERBOSE": "true",
    })

    yield original_env

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_config(isolated_test_env: dict[str, str]) -> LakestackConfig:
    """Debug configuration with short readiness timeouts."""
    return LakestackConfig(
        log_level="DEBUG",
        verbose=True,
        log_dir=os.environ["LAKESTACK_LOG_DIR"],
        minio_wait_timeout=5,
        nessie_wait_timeout=5,
        trino_wait_timeout=5,
    )


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """Scratch directory for fixture scripts and config files."""
    workspace = Path(tempfile.mkdtemp(prefix="lakestack_workspace_"))

    yield workspace

    shutil.rmtree(workspace)


def pytest_collection_modifyitems(config, items):
    """Mark integration tests as container tests and end-to-end tests as slow."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.container)

        if "end_to_end" in item.nodeid:
            item.add_marker(pytest.mark.slow)


class TestHelper:
    """File helpers for tests."""

    __test__ = False

    @staticmethod
    def create_test_file(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


@pytest.fixture
def test_helper() -> TestHelper:
    return TestHelper()
