"""
Configuration management for Lakestack

Handles configuration loading from environment variables, files,
and explicit overrides using Pydantic settings.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class LakestackConfig(BaseSettings):
    """
    Main configuration class for Lakestack.

    Configuration is loaded from:
    1. Explicit keyword arguments (highest priority)
    2. Environment variables prefixed with LAKESTACK_
    3. .env file
    4. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="LAKESTACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Container configuration
    container_runtime: str = Field(
        default="docker",
        description="Container runtime (docker or podman)",
    )
    host: str = Field(
        default="localhost",
        description="Host name used to reach published container ports",
    )
    minio_image: str = Field(
        default="minio/minio:RELEASE.2025-09-07T16-13-09Z",
        description="Object storage image",
    )
    nessie_image: str = Field(
        default="ghcr.io/projectnessie/nessie:0.105.7",
        description="Catalog service image",
    )
    trino_image: str = Field(
        default="trinodb/trino:478",
        description="Query engine image",
    )

    # Object storage configuration
    minio_root_user: str = Field(
        default="minioadmin",
        description="Object storage root user",
    )
    minio_root_password: str = Field(
        default="minioadmin",
        description="Object storage root password",
    )
    warehouse_bucket: str = Field(
        default="warehouse",
        description="Bucket created at startup to hold table data",
    )

    # Query engine configuration
    catalog_name: str = Field(
        default="iceberg",
        description="Catalog used by every query engine connection",
    )
    trino_user: str = Field(
        default="lakestack",
        description="User name sent on query engine connections",
    )

    # Fixture configuration
    scripts_path: str = Field(
        default="./Scripts",
        description="Directory holding the create/ and insert/ fixture folders",
    )

    # Readiness and exec timeouts (seconds)
    minio_wait_timeout: float = Field(
        default=60.0,
        description="Seconds to wait for object storage readiness",
    )
    nessie_wait_timeout: float = Field(
        default=60.0,
        description="Seconds to wait for catalog readiness",
    )
    trino_wait_timeout: float = Field(
        default=180.0,
        description="Seconds to wait for query engine readiness",
    )
    exec_timeout: Optional[float] = Field(
        default=None,
        description="Upper bound for exec calls; None waits until cancelled",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for log files",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose console output",
    )

    @validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @validator("container_runtime")
    def validate_container_runtime(cls, v: str) -> str:
        """Validate container runtime is supported."""
        valid_runtimes = ["podman", "docker"]
        if v.lower() not in valid_runtimes:
            raise ValueError(
                f"container_runtime must be one of: {', '.join(valid_runtimes)}"
            )
        return v.lower()

    @validator(
        "minio_wait_timeout", "nessie_wait_timeout", "trino_wait_timeout", "exec_timeout"
    )
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Timeouts must be positive when set."""
        if v is not None and v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    def get_log_dir_path(self) -> Path:
        """Get log directory as Path object."""
        return Path(self.log_dir)

    def get_scripts_path(self) -> Path:
        """Get fixture script root as Path object."""
        return Path(self.scripts_path)

    def create_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        log_path = self.get_log_dir_path()
        log_path.mkdir(parents=True, exist_ok=True)
        (log_path / "containers").mkdir(exist_ok=True)

    def mask_sensitive_values(self) -> dict[str, str]:
        """Get configuration dict with sensitive values masked."""
        config_dict = self.model_dump()

        if config_dict.get("minio_root_password"):
            config_dict["minio_root_password"] = "***"

        return config_dict


def _load_yaml_overrides(config_file: str) -> dict:
    """Read a YAML file of configuration values."""
    import yaml

    config_path = Path(config_file)
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse config file {config_path}: {e}")
        raise ValueError(f"Invalid configuration file {config_path}: {e}")

    if data is None:
        logger.warning(f"Empty config file: {config_path}")
        return {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid configuration file {config_path}: expected a mapping at top level"
        )

    return {str(key).replace("-", "_"): value for key, value in data.items()}


def load_config(
    config_file: Optional[str] = None,
    overrides: Optional[dict] = None,
) -> LakestackConfig:
    """
    Load configuration with optional YAML file and explicit overrides.

    Args:
        config_file: Optional YAML configuration file path
        overrides: Explicit overrides applied on top of everything else

    Returns:
        Loaded configuration
    """
    config_data: dict = {}

    if config_file:
        if Path(config_file).exists():
            config_data.update(_load_yaml_overrides(config_file))
        else:
            logger.debug(f"Config file not found: {config_file}")

    if overrides:
        config_data.update(overrides)

    config = LakestackConfig(**config_data)

    config.create_directories()

    return config


def get_default_config() -> LakestackConfig:
    """
    Get default configuration for development/testing.

    Returns:
        Default configuration instance
    """
    return LakestackConfig(
        log_level="DEBUG",
        verbose=True,
    )
