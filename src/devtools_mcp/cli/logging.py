"""Logging hooks for CLI commands.

Provides request ID generation and start/finish logging around each command so
that log lines on stderr can be correlated with the envelope on stdout.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

__all__ = [
    "generate_request_id",
    "get_request_id",
    "set_request_id",
    "cli_command",
    "CLILogContext",
]

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Context variable for request/correlation ID
_request_id: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    """Generate a unique request ID for CLI command tracking.

    Returns:
        Short UUID suitable for log correlation.
    """
    return f"cli_{uuid.uuid4().hex[:12]}"


def get_request_id() -> str:
    """Get the current request ID, or empty string if not set."""
    return _request_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


class CLILogContext:
    """Context manager that sets a request ID for the duration of a command.

    Example:
        >>> with CLILogContext() as ctx:
        ...     logger.info("Processing", extra={"request_id": ctx.request_id})
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token = None

    def __enter__(self) -> "CLILogContext":
        self._token = _request_id.set(self.request_id)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._token is not None:
            _request_id.reset(self._token)


def cli_command(
    command_name: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator that wraps a CLI command in a request context and logs timing.

    Args:
        command_name: Override command name (defaults to function name).

    Example:
        >>> @cli_command("stats")
        ... def stats_cmd():
        ...     ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = command_name or func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with CLILogContext() as ctx:
                start = time.perf_counter()
                success = True
                logger.debug(
                    f"CLI command started: {name}",
                    extra={"command": name, "request_id": ctx.request_id},
                )
                try:
                    return func(*args, **kwargs)
                except Exception:
                    success = False
                    raise
                finally:
                    duration_ms = (time.perf_counter() - start) * 1000
                    logger.debug(
                        f"CLI command completed: {name}",
                        extra={
                            "command": name,
                            "request_id": ctx.request_id,
                            "success": success,
                            "duration_ms": round(duration_ms, 2),
                        },
                    )

        return wrapper

    return decorator
