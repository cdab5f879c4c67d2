"""
Tests for configuration management module.
"""

import os
from pathlib import Path

import pytest

from lakestack.config import LakestackConfig, get_default_config, load_config


class TestLakestackConfig:
    """Test LakestackConfig class."""

    def test_default_configuration(self, isolated_test_env):
        """Test default configuration values."""
        for var in ["LAKESTACK_LOG_LEVEL", "LAKESTACK_LOG_DIR", "LAKESTACK_VERBOSE"]:
            os.environ.pop(var, None)

        config = LakestackConfig()

        assert config.log_level == "INFO"
        assert config.log_dir == "logs"
        assert config.verbose is False
        assert config.container_runtime == "docker"
        assert config.warehouse_bucket == "warehouse"
        assert config.catalog_name == "iceberg"
        assert config.exec_timeout is None
        assert config.trino_wait_timeout == 180

    def test_environment_variable_loading(self, isolated_test_env):
        """Test loading configuration from environment variables."""
        os.environ.update(
            {
                "LAKESTACK_CONTAINER_RUNTIME": "podman",
                "LAKESTACK_TRINO_IMAGE": "trinodb/trino:latest",
                "LAKESTACK_EXEC_TIMEOUT": "30",
            }
        )

        config = LakestackConfig()

        assert config.container_runtime == "podman"
        assert config.trino_image == "trinodb/trino:latest"
        assert config.exec_timeout == 30

    def test_log_level_validation(self, isolated_test_env):
        """Test log level validation."""
        assert LakestackConfig(log_level="warning").log_level == "WARNING"

        with pytest.raises(ValueError, match="log_level must be one of"):
            LakestackConfig(log_level="LOUD")

    def test_container_runtime_validation(self, isolated_test_env):
        assert LakestackConfig(container_runtime="Docker").container_runtime == "docker"

        with pytest.raises(ValueError, match="container_runtime must be one of"):
            LakestackConfig(container_runtime="containerd")

    def test_timeout_validation(self, isolated_test_env):
        with pytest.raises(ValueError, match="timeouts must be positive"):
            LakestackConfig(trino_wait_timeout=0)
        with pytest.raises(ValueError, match="timeouts must be positive"):
            LakestackConfig(exec_timeout=-1)

    def test_mask_sensitive_values(self, test_config):
        masked = test_config.mask_sensitive_values()

        assert masked["minio_root_password"] == "***"
        assert masked["minio_root_user"] == "minioadmin"

    def test_create_directories(self, isolated_test_env, temp_workspace):
        log_dir = temp_workspace / "run-logs"
        config = LakestackConfig(log_dir=str(log_dir))

        config.create_directories()

        assert (log_dir / "containers").is_dir()
        assert config.get_log_dir_path() == Path(log_dir)


class TestLoadConfig:
    """Test configuration loading from files and overrides."""

    def test_yaml_file_and_overrides(self, isolated_test_env, temp_workspace, test_helper):
        config_file = temp_workspace / "lakestack.yml"
        test_helper.create_test_file(
            config_file,
            "warehouse-bucket: lake\n"
            "trino_wait_timeout: 90\n"
            f"log_dir: {temp_workspace / 'logs'}\n",
        )

        config = load_config(str(config_file), overrides={"trino_wait_timeout": 120})

        assert config.warehouse_bucket == "lake"
        assert config.trino_wait_timeout == 120
        assert (temp_workspace / "logs" / "containers").is_dir()

    def test_missing_file_uses_defaults(self, isolated_test_env, temp_workspace):
        config = load_config(str(temp_workspace / "missing.yml"))

        assert config.warehouse_bucket == "warehouse"

    def test_empty_file(self, isolated_test_env, temp_workspace, test_helper):
        config_file = temp_workspace / "empty.yml"
        test_helper.create_test_file(config_file, "")

        assert load_config(str(config_file)).catalog_name == "iceberg"

    def test_invalid_yaml(self, isolated_test_env, temp_workspace, test_helper):
        config_file = temp_workspace / "bad.yml"
        test_helper.create_test_file(config_file, "key: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid configuration file"):
            load_config(str(config_file))

    def test_non_mapping_yaml(self, isolated_test_env, temp_workspace, test_helper):
        config_file = temp_workspace / "list.yml"
        test_helper.create_test_file(config_file, "- a\n- b\n")

        with pytest.raises(ValueError, match="expected a mapping"):
            load_config(str(config_file))

    def test_default_config(self, isolated_test_env):
        config = get_default_config()

        assert config.log_level == "DEBUG"
        assert config.verbose is True
