"""
Root pytest configuration and shared fixtures.

Resets process-wide state (cache manager, server config, log handlers)
between tests and provides small helpers for clock and file manipulation.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Union

import pytest

import devtools_mcp.config as config_module
from devtools_mcp.core.cache import reset_cache_manager
from devtools_mcp.core.logging_config import ROOT_LOGGER_NAME

# Response contract version from responses.py
RESPONSE_CONTRACT_VERSION = "response-v2"


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


def write_file(path: Union[str, Path], content: str, *, bump_mtime_s: float = 1.0) -> None:
    """Atomically replace ``path`` with ``content`` and a strictly newer mtime.

    Filesystems with coarse mtime resolution can otherwise report the same
    mtime for two writes in quick succession. The rename means a concurrent
    reader sees either the old or the new file, never a half-written one.
    """
    path = Path(path)
    previous = path.stat().st_mtime_ns if path.exists() else None
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(content)
    if previous is not None:
        target = previous + int(bump_mtime_s * 1_000_000_000)
        os.utime(tmp, ns=(target, target))
    os.replace(tmp, path)


def validate_response_envelope(response: Dict[str, Any]) -> bool:
    """Validate that a response dict conforms to the response-v2 envelope.

    Raises:
        AssertionError: With detailed message on validation failure
    """
    required_keys = {"success", "data", "error", "meta"}
    missing = required_keys - set(response.keys())
    assert not missing, f"Response missing required keys: {missing}"

    assert isinstance(response["success"], bool), "success must be boolean"
    assert isinstance(response["data"], dict), "data must be dict"
    assert isinstance(response["meta"], dict), "meta must be dict"

    if response["success"]:
        assert response["error"] is None, "error must be null when success=True"
    else:
        assert isinstance(response["error"], str) and response["error"], (
            "error must be non-empty string when success=False"
        )

    assert response["meta"].get("version") == RESPONSE_CONTRACT_VERSION, (
        f"meta.version must be '{RESPONSE_CONTRACT_VERSION}'"
    )
    return True


@pytest.fixture(autouse=True)
def reset_process_state():
    """Drop the shared cache manager, config and log handlers around each test."""
    reset_cache_manager()
    config_module._config = None
    yield
    reset_cache_manager()
    config_module._config = None
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def edit_file():
    """Fixture providing ``write_file`` for tests that modify tracked files."""
    return write_file


@pytest.fixture
def response_validator():
    """Fixture providing response envelope validation function."""
    return validate_response_envelope


# Check if pytest-asyncio is available
try:
    import pytest_asyncio  # noqa: F401
    HAS_PYTEST_ASYNCIO = True
except ImportError:
    HAS_PYTEST_ASYNCIO = False


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "asyncio: mark test as async (requires pytest-asyncio)",
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test that waits on real timers",
    )


def pytest_collection_modifyitems(config, items):
    """Skip async tests when pytest-asyncio is not available."""
    skip_asyncio = pytest.mark.skip(reason="pytest-asyncio not installed")

    for item in items:
        if not HAS_PYTEST_ASYNCIO and item.get_closest_marker("asyncio"):
            item.add_marker(skip_asyncio)
