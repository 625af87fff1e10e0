"""Tests for devtools_mcp.config: TOML + env loading and validation."""

import logging
import os
from unittest.mock import patch

import pytest

from devtools_mcp.config import (
    DEFAULT_NAMESPACES,
    CacheConfig,
    ChecksumConfig,
    ConfigurationError,
    NamespaceConfig,
    ServerConfig,
    get_config,
    set_config,
)
from devtools_mcp.core.cache import CacheNamespace


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    """Run from an empty directory with no DEVTOOLS_MCP_* variables."""
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ, {}, clear=True):
        yield tmp_path


class TestDefaults:
    def test_server_defaults(self, clean_env):
        config = ServerConfig.from_env()

        assert config.log_level == "INFO"
        assert config.structured_logging is True
        assert config.cache.enabled is True
        assert config.cache.max_memory_mb == 100.0
        assert config.cache.namespaces == DEFAULT_NAMESPACES
        assert config.checksum.algorithm == "sha256"
        assert config.checksum.watch_interval_ms == 5000

    def test_builtin_namespace_limits(self):
        assert DEFAULT_NAMESPACES["projectDetection"] == NamespaceConfig(50, 60_000)
        assert DEFAULT_NAMESPACES["gitOperations"] == NamespaceConfig(100, 30_000)
        assert DEFAULT_NAMESPACES["goModules"] == NamespaceConfig(50, 300_000)
        assert DEFAULT_NAMESPACES["fileLists"] == NamespaceConfig(200, 30_000)
        assert DEFAULT_NAMESPACES["commandAvailability"] == NamespaceConfig(50, 3_600_000)
        assert DEFAULT_NAMESPACES["testResults"] == NamespaceConfig(100, 60_000)
        assert DEFAULT_NAMESPACES["nodeModules"] == NamespaceConfig(50, 300_000)

    def test_instances_do_not_share_namespace_maps(self):
        first = CacheConfig()
        first.namespaces["fileLists"] = NamespaceConfig(1, 1)
        assert CacheConfig().namespaces["fileLists"].max_items == 200


class TestTomlLoading:
    TOML = """
[logging]
level = "debug"
structured = false

[cache]
enabled = true
max_memory_mb = 50

[cache.namespaces.fileLists]
max_items = 20

[cache.namespaces.custom]
max_items = 5
ttl_ms = 1000

[checksum]
watch_interval_ms = 250
algorithm = "MD5"
max_concurrent_checks = 4
"""

    def test_default_location_loaded(self, clean_env):
        (clean_env / "devtools-mcp.toml").write_text(self.TOML)

        config = ServerConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.structured_logging is False
        assert config.cache.max_memory_mb == 50.0
        # max_items overridden, ttl kept from the built-in default
        assert config.cache.namespaces["fileLists"] == NamespaceConfig(20, 30_000)
        assert config.cache.namespaces["custom"] == NamespaceConfig(5, 1000)
        assert config.cache.namespaces["gitOperations"] == NamespaceConfig(100, 30_000)
        assert config.checksum.watch_interval_ms == 250
        assert config.checksum.algorithm == "md5"
        assert config.checksum.max_concurrent_checks == 4

    def test_hidden_location_loaded(self, clean_env):
        (clean_env / ".devtools-mcp.toml").write_text("[logging]\nlevel = 'WARNING'\n")
        assert ServerConfig.from_env().log_level == "WARNING"

    def test_explicit_file(self, clean_env):
        explicit = clean_env / "explicit.toml"
        explicit.write_text("[checksum]\nenabled = false\n")
        (clean_env / "devtools-mcp.toml").write_text("[checksum]\nenabled = true\n")

        config = ServerConfig.from_env(str(explicit))
        assert config.checksum.enabled is False

    def test_config_file_env_var(self, clean_env):
        path = clean_env / "from-env.toml"
        path.write_text("[cache]\nenabled = false\n")

        with patch.dict(os.environ, {"DEVTOOLS_MCP_CONFIG_FILE": str(path)}):
            assert ServerConfig.from_env().cache.enabled is False

    def test_missing_file_logs_warning(self, clean_env, caplog):
        with caplog.at_level(logging.WARNING, logger="devtools_mcp.config"):
            config = ServerConfig.from_env(str(clean_env / "nope.toml"))
        assert "Config file not found" in caplog.text
        assert config.log_level == "INFO"

    def test_malformed_file_logs_error(self, clean_env, caplog):
        path = clean_env / "bad.toml"
        path.write_text("[cache\nenabled = ")
        with caplog.at_level(logging.ERROR, logger="devtools_mcp.config"):
            config = ServerConfig.from_env(str(path))
        assert "Error loading config file" in caplog.text
        assert config.cache.enabled is True

    def test_malformed_namespace_entry_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="devtools_mcp.config"):
            config = CacheConfig.from_toml_dict({"namespaces": {"fileLists": 3}})
        assert config.namespaces["fileLists"] == DEFAULT_NAMESPACES["fileLists"]
        assert "malformed" in caplog.text


class TestEnvOverrides:
    def test_env_overrides_toml(self, clean_env):
        (clean_env / "devtools-mcp.toml").write_text(
            "[logging]\nlevel = 'DEBUG'\n[checksum]\nalgorithm = 'md5'\n"
        )
        env = {
            "DEVTOOLS_MCP_LOG_LEVEL": "error",
            "DEVTOOLS_MCP_STRUCTURED_LOGGING": "false",
            "DEVTOOLS_MCP_CACHE_ENABLED": "0",
            "DEVTOOLS_MCP_CACHE_MAX_MEMORY_MB": "12.5",
            "DEVTOOLS_MCP_CHECKSUM_ENABLED": "no",
            "DEVTOOLS_MCP_CHECKSUM_WATCH_INTERVAL_MS": "750",
            "DEVTOOLS_MCP_CHECKSUM_ALGORITHM": "SHA256",
        }
        with patch.dict(os.environ, env):
            config = ServerConfig.from_env()

        assert config.log_level == "ERROR"
        assert config.structured_logging is False
        assert config.cache.enabled is False
        assert config.cache.max_memory_mb == 12.5
        assert config.checksum.enabled is False
        assert config.checksum.watch_interval_ms == 750
        assert config.checksum.algorithm == "sha256"

    def test_unparseable_numbers_ignored(self, clean_env):
        env = {
            "DEVTOOLS_MCP_CACHE_MAX_MEMORY_MB": "lots",
            "DEVTOOLS_MCP_CHECKSUM_WATCH_INTERVAL_MS": "soon",
        }
        with patch.dict(os.environ, env):
            config = ServerConfig.from_env()

        assert config.cache.max_memory_mb == 100.0
        assert config.checksum.watch_interval_ms == 5000

    def test_unknown_algorithm_fails_validation(self, clean_env):
        with patch.dict(os.environ, {"DEVTOOLS_MCP_CHECKSUM_ALGORITHM": "crc32"}):
            config = ServerConfig.from_env()

        with pytest.raises(ConfigurationError, match="crc32"):
            config.validate()


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"algorithm": "sha1"},
            {"watch_interval_ms": 0},
            {"max_concurrent_checks": 0},
            {"io_retries": -1},
            {"io_retry_delay_ms": -5},
        ],
    )
    def test_invalid_checksum_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            ChecksumConfig(**kwargs).validate()

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)

    def test_valid_config_passes(self):
        ServerConfig().validate()

    def test_zero_sizes_are_valid(self):
        CacheConfig.with_overrides({"fileLists": NamespaceConfig(0, 0)}).validate()

    def test_enum_keys_normalized_to_names(self):
        config = CacheConfig.with_overrides(
            {CacheNamespace.GO_MODULES: NamespaceConfig(5, 10)}
        )

        assert config.namespaces["goModules"] == NamespaceConfig(5, 10)
        assert set(config.namespaces) == set(DEFAULT_NAMESPACES)


class TestGlobalConfig:
    def test_set_and_get(self):
        config = ServerConfig(log_level="DEBUG")
        set_config(config)
        assert get_config() is config

    def test_get_builds_from_env(self, clean_env):
        with patch.dict(os.environ, {"DEVTOOLS_MCP_LOG_LEVEL": "WARNING"}):
            assert get_config().log_level == "WARNING"
