"""
Logging for Lakestack

Root logging goes to stdout and, optionally, to a rotating file under the
log directory. Every docker/podman invocation is additionally written to
its own file in <log_dir>/containers with credentials masked.
"""

import logging
import logging.handlers
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# (pattern, replacement) pairs applied to runtime command lines and output
_SECRET_PATTERNS = [
    (re.compile(r"(MINIO_ROOT_PASSWORD=)\S+"), r"\1***"),
    (re.compile(r"(s3\.aws-secret-key=)\S+"), r"\1***"),
    # mc alias set <alias> <url> <user> <secret>
    (re.compile(r"(mc alias set \S+ \S+ \S+ )\S+"), r"\1***"),
    (re.compile(r"\bpassword[=\s]+\S+", re.IGNORECASE), "password=***"),
]

NOISY_LOGGERS = ("urllib3", "aiohttp", "trino", "asyncio")


def setup_logging(
    log_dir: str = "logs",
    verbose: bool = False,
    log_level: Optional[str] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Replace the root handlers with console and rotating file output.

    The file handler always records DEBUG. The console uses log_level when
    given, else DEBUG for verbose and INFO otherwise. Returns the
    "lakestack" logger.
    """
    if log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_path = Path(log_dir)
    if enable_file_logging:
        (log_path / "containers").mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / f"lakestack_{timestamp}.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    configure_third_party_loggers()

    logger = logging.getLogger("lakestack")
    logger.debug(f"Logging initialized at {logging.getLevelName(level)}")
    if enable_file_logging:
        logger.debug(f"Log directory: {log_path.absolute()}")
    return logger


def mask_sensitive_data(message: str) -> str:
    """Hide storage credentials in a runtime command line or its output."""
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SubprocessLogHandler:
    """Per-operation log of runtime CLI commands, their output and exit status."""

    def __init__(self, operation: str, log_dir: str = "logs", to_file: bool = True):
        self.operation = operation
        self.log_file: Optional[str] = None
        self.logger = logging.getLogger(f"lakestack.subprocess.{operation}")
        self.logger.setLevel(logging.DEBUG)

        # One file per operation name and process; later handlers reuse it
        if to_file and not self.logger.handlers:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = Path(log_dir) / "containers" / f"{operation}_{timestamp}.log"
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self.log_file = str(log_file)

            handler = logging.FileHandler(self.log_file)
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(levelname)s - %(message)s", datefmt=DATE_FORMAT)
            )
            self.logger.addHandler(handler)

    def log_command(self, command: list[str]) -> None:
        self.logger.info(f"Executing command: {mask_sensitive_data(' '.join(command))}")

    def log_output(self, output: str, level: int = logging.INFO) -> None:
        if output.strip():
            self.logger.log(level, mask_sensitive_data(output.strip()))

    def log_completion(self, return_code: int, elapsed_time: float) -> None:
        if return_code == 0:
            self.logger.info(f"✓ {self.operation} finished in {elapsed_time:.2f}s")
        else:
            self.logger.error(
                f"✗ {self.operation} exited with {return_code} after {elapsed_time:.2f}s"
            )


def configure_third_party_loggers() -> None:
    """Keep HTTP client and driver chatter at WARNING and above."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
