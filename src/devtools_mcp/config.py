"""
Server configuration for devtools-mcp.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (devtools-mcp.toml)
3. Default values (lowest priority)

Environment variables:
- DEVTOOLS_MCP_CONFIG_FILE: Path to TOML config file
- DEVTOOLS_MCP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- DEVTOOLS_MCP_STRUCTURED_LOGGING: Emit JSON log lines (true/false)
- DEVTOOLS_MCP_CACHE_ENABLED: Master switch for the in-process cache
- DEVTOOLS_MCP_CACHE_MAX_MEMORY_MB: Advisory memory budget for all namespaces
- DEVTOOLS_MCP_CHECKSUM_ENABLED: Whether dev file checksum tracking is enabled
- DEVTOOLS_MCP_CHECKSUM_WATCH_INTERVAL_MS: Interval between automatic checks
- DEVTOOLS_MCP_CHECKSUM_ALGORITHM: Digest algorithm (sha256 or md5)
"""

import os
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from importlib.metadata import version as get_package_version, PackageNotFoundError
from pathlib import Path
from typing import Optional, Dict, Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback


logger = logging.getLogger(__name__)


def _get_version() -> str:
    """Get package version from metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("devtools-mcp")
    except PackageNotFoundError:
        return "0.3.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()

VALID_CHECKSUM_ALGORITHMS = ("sha256", "md5")


class ConfigurationError(ValueError):
    """Raised when cache or checksum configuration values are invalid."""


@dataclass(frozen=True)
class NamespaceConfig:
    """Capacity and freshness settings for one cache namespace.

    Attributes:
        max_items: Maximum number of entries kept (0 disables caching)
        ttl_ms: Time-to-live of an entry in milliseconds (0 = always stale)
    """

    max_items: int
    ttl_ms: int

    @classmethod
    def from_toml_dict(
        cls, data: Dict[str, Any], base: Optional["NamespaceConfig"] = None
    ) -> "NamespaceConfig":
        """Create config from TOML dict, keeping ``base`` values for missing keys.

        Args:
            data: Dict from TOML parsing (typically [cache.namespaces.<name>])
            base: Values to fall back on for keys not present in ``data``

        Returns:
            NamespaceConfig instance
        """
        base = base or DEFAULT_NAMESPACE_CONFIG
        return cls(
            max_items=int(data.get("max_items", base.max_items)),
            ttl_ms=int(data.get("ttl_ms", base.ttl_ms)),
        )


# Used for namespaces that have no explicit entry
DEFAULT_NAMESPACE_CONFIG = NamespaceConfig(max_items=100, ttl_ms=60_000)

DEFAULT_NAMESPACES: Dict[str, NamespaceConfig] = {
    "projectDetection": NamespaceConfig(max_items=50, ttl_ms=60_000),  # 60s
    "gitOperations": NamespaceConfig(max_items=100, ttl_ms=30_000),  # 30s
    "goModules": NamespaceConfig(max_items=50, ttl_ms=300_000),  # 5min
    "fileLists": NamespaceConfig(max_items=200, ttl_ms=30_000),  # 30s
    "commandAvailability": NamespaceConfig(max_items=50, ttl_ms=3_600_000),  # 1hr
    "testResults": NamespaceConfig(max_items=100, ttl_ms=60_000),  # 60s
    "nodeModules": NamespaceConfig(max_items=50, ttl_ms=300_000),  # 5min
}


@dataclass
class CacheConfig:
    """Configuration for the in-process namespaced cache.

    Attributes:
        enabled: Master switch; when False every lookup misses and sets are dropped
        max_memory_mb: Advisory memory budget across all namespaces
        namespaces: Per-namespace capacity/TTL, merged over the built-in defaults
        default_namespace: Settings for namespaces created lazily on first use
    """

    enabled: bool = True
    max_memory_mb: float = 100.0
    namespaces: Dict[str, NamespaceConfig] = field(
        default_factory=lambda: dict(DEFAULT_NAMESPACES)
    )
    default_namespace: NamespaceConfig = DEFAULT_NAMESPACE_CONFIG

    @classmethod
    def with_overrides(
        cls,
        namespaces: Optional[Dict[Any, NamespaceConfig]] = None,
        **kwargs: Any,
    ) -> "CacheConfig":
        """Build a config whose namespaces are the defaults updated by ``namespaces``.

        Args:
            namespaces: Namespace settings replacing the matching defaults, keyed
                by name or by CacheNamespace member
            **kwargs: Any other CacheConfig field

        Returns:
            CacheConfig instance
        """
        merged = dict(DEFAULT_NAMESPACES)
        if namespaces:
            merged.update(
                {
                    name.value if isinstance(name, Enum) else str(name): cfg
                    for name, cfg in namespaces.items()
                }
            )
        return cls(namespaces=merged, **kwargs)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        """Create config from TOML dict (typically [cache] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            CacheConfig instance
        """
        overrides: Dict[str, NamespaceConfig] = {}
        for name, ns_data in data.get("namespaces", {}).items():
            if not isinstance(ns_data, dict):
                logger.warning("Ignoring malformed cache namespace entry '%s'", name)
                continue
            overrides[name] = NamespaceConfig.from_toml_dict(
                ns_data, DEFAULT_NAMESPACES.get(name)
            )

        default_namespace = DEFAULT_NAMESPACE_CONFIG
        if isinstance(data.get("default_namespace"), dict):
            default_namespace = NamespaceConfig.from_toml_dict(data["default_namespace"])

        return cls.with_overrides(
            overrides,
            enabled=_parse_bool(data.get("enabled", True)),
            max_memory_mb=float(data.get("max_memory_mb", 100.0)),
            default_namespace=default_namespace,
        )

    def namespace_config(self, namespace: str) -> NamespaceConfig:
        """Get settings for a namespace, falling back to ``default_namespace``."""
        return self.namespaces.get(namespace, self.default_namespace)

    def validate(self) -> None:
        """Check every value, raising ConfigurationError on the first bad one."""
        if self.max_memory_mb < 0:
            raise ConfigurationError(
                f"max_memory_mb must be >= 0, got {self.max_memory_mb}"
            )
        for name, ns in [("<default>", self.default_namespace), *self.namespaces.items()]:
            if not name:
                raise ConfigurationError("Cache namespace names must be non-empty")
            if ns.max_items < 0:
                raise ConfigurationError(
                    f"Namespace '{name}': max_items must be >= 0, got {ns.max_items}"
                )
            if ns.ttl_ms < 0:
                raise ConfigurationError(
                    f"Namespace '{name}': ttl_ms must be >= 0, got {ns.ttl_ms}"
                )


@dataclass
class ChecksumConfig:
    """Configuration for file checksum tracking.

    Attributes:
        enabled: Whether dev file tracking is wired up at startup
        watch_interval_ms: Interval between automatic checks
        algorithm: Digest algorithm ("sha256" or "md5")
        max_concurrent_checks: Upper bound on files hashed at the same time
        io_retries: Extra attempts after a read error before reporting "unchanged"
        io_retry_delay_ms: Delay between those attempts
    """

    enabled: bool = True
    watch_interval_ms: int = 5000
    algorithm: str = "sha256"
    max_concurrent_checks: int = 8
    io_retries: int = 1
    io_retry_delay_ms: int = 25

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ChecksumConfig":
        """Create config from TOML dict (typically [checksum] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            ChecksumConfig instance
        """
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            watch_interval_ms=int(data.get("watch_interval_ms", 5000)),
            algorithm=str(data.get("algorithm", "sha256")).lower(),
            max_concurrent_checks=int(data.get("max_concurrent_checks", 8)),
            io_retries=int(data.get("io_retries", 1)),
            io_retry_delay_ms=int(data.get("io_retry_delay_ms", 25)),
        )

    def validate(self) -> None:
        """Check every value, raising ConfigurationError on the first bad one."""
        if self.algorithm not in VALID_CHECKSUM_ALGORITHMS:
            raise ConfigurationError(
                f"Invalid checksum algorithm '{self.algorithm}'. "
                f"Must be one of: {', '.join(VALID_CHECKSUM_ALGORITHMS)}"
            )
        if self.watch_interval_ms <= 0:
            raise ConfigurationError(
                f"watch_interval_ms must be positive, got {self.watch_interval_ms}"
            )
        if self.max_concurrent_checks <= 0:
            raise ConfigurationError(
                f"max_concurrent_checks must be positive, got {self.max_concurrent_checks}"
            )
        if self.io_retries < 0 or self.io_retry_delay_ms < 0:
            raise ConfigurationError("io_retries and io_retry_delay_ms must be >= 0")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass
class ServerConfig:
    """Server configuration with support for env vars and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Server configuration
    server_name: str = "devtools-mcp"
    server_version: str = field(default_factory=lambda: _PACKAGE_VERSION)

    # Cache configuration
    cache: CacheConfig = field(default_factory=CacheConfig)

    # Checksum tracking configuration
    checksum: ChecksumConfig = field(default_factory=ChecksumConfig)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        # Load TOML config if available
        toml_path = config_file or os.environ.get("DEVTOOLS_MCP_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            # Try default locations
            for default_path in ["devtools-mcp.toml", ".devtools-mcp.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        # Override with environment variables
        config._load_env()

        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            # Logging settings
            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = log["level"].upper()
                if "structured" in log:
                    self.structured_logging = _parse_bool(log["structured"])

            # Server settings
            if "server" in data:
                srv = data["server"]
                if "name" in srv:
                    self.server_name = srv["name"]
                if "version" in srv:
                    self.server_version = srv["version"]

            # Cache settings
            if "cache" in data:
                self.cache = CacheConfig.from_toml_dict(data["cache"])

            # Checksum tracking settings
            if "checksum" in data:
                self.checksum = ChecksumConfig.from_toml_dict(data["checksum"])

        except Exception as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        # Log level
        if level := os.environ.get("DEVTOOLS_MCP_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("DEVTOOLS_MCP_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        # Cache settings
        if cache_enabled := os.environ.get("DEVTOOLS_MCP_CACHE_ENABLED"):
            self.cache.enabled = _parse_bool(cache_enabled)
        if max_memory := os.environ.get("DEVTOOLS_MCP_CACHE_MAX_MEMORY_MB"):
            try:
                self.cache.max_memory_mb = float(max_memory)
            except ValueError:
                pass

        # Checksum settings
        if checksum_enabled := os.environ.get("DEVTOOLS_MCP_CHECKSUM_ENABLED"):
            self.checksum.enabled = _parse_bool(checksum_enabled)
        if interval := os.environ.get("DEVTOOLS_MCP_CHECKSUM_WATCH_INTERVAL_MS"):
            try:
                self.checksum.watch_interval_ms = int(interval)
            except ValueError:
                pass
        if algorithm := os.environ.get("DEVTOOLS_MCP_CHECKSUM_ALGORITHM"):
            self.checksum.algorithm = algorithm.strip().lower()

    def validate(self) -> None:
        """Validate the cache and checksum sections.

        Raises:
            ConfigurationError: If any section holds an invalid value
        """
        self.cache.validate()
        self.checksum.validate()

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        from devtools_mcp.core.logging_config import configure_logging

        configure_logging(
            level=getattr(logging, self.log_level, logging.INFO),
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def set_config(config: ServerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def copy_cache_config(config: CacheConfig) -> CacheConfig:
    """Return a detached copy of ``config`` (namespace map included)."""
    return replace(config, namespaces=dict(config.namespaces))
