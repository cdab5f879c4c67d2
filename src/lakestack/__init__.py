"""
Lakestack: disposable Trino + Nessie + MinIO stacks for integration tests

Starts a lakehouse stack on an isolated container network, loads SQL
fixtures and tears it down afterwards.
"""

__version__ = "0.1.0"
__author__ = "Lakestack Contributors"

from .config import LakestackConfig, load_config
from .errors import LakestackError, StackStartupError
from .logging_config import setup_logging
from .session import StackSession
from .stack import LakehouseStack

__all__ = [
    "LakehouseStack",
    "LakestackConfig",
    "LakestackError",
    "StackSession",
    "StackStartupError",
    "load_config",
    "setup_logging",
]
