"""
Cache key generation utilities.

Builds deterministic keys for the cache namespaces so that the same tool
invocation always maps to the same entry, independent of argument order.
"""

import hashlib
import json
import os
from typing import Any, Mapping, Optional

# Length of the argument digest embedded in operation keys
ARGS_HASH_LENGTH = 16


def _hash_args(args: Mapping[str, Any]) -> str:
    """Hash arguments as sorted-key JSON."""
    args_json = json.dumps(
        dict(args), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.sha256(args_json.encode("utf-8")).hexdigest()[:ARGS_HASH_LENGTH]


def build_cache_key(
    operation: str,
    args: Optional[Mapping[str, Any]] = None,
    project_root: str = ".",
) -> str:
    """
    Generate a deterministic cache key for a tool operation.

    The key has the form ``{operation}:{directory}:{args_hash}`` where
    ``directory`` is ``args["directory"]`` (or ``project_root``) resolved to an
    absolute path and ``args_hash`` is a truncated sha256 of the arguments.

    Args:
        operation: Operation name (e.g. "project-info", "test", "version")
        args: Tool arguments (optional)
        project_root: Directory used when args carry no "directory"

    Returns:
        Cache key string

    Example:
        key = build_cache_key("test", {"directory": "src", "verbose": True})
        # "test:/home/me/proj/src:3f0c2a9e1b7d4c55"
    """
    args = args or {}
    directory = os.path.abspath(args.get("directory") or project_root)
    return f"{operation}:{directory}:{_hash_args(args)}"


def build_command_key(command: str) -> str:
    """Key for command availability lookups (commandAvailability namespace)."""
    return f"cmd:{command}"


def build_project_key(project_root: str) -> str:
    """Key for project detection results (projectDetection namespace)."""
    return f"project:{os.path.abspath(project_root)}"


def is_cache_key_valid(key: Any) -> bool:
    """
    Validate cache key format.

    Args:
        key: Cache key to validate

    Returns:
        True if key is a non-empty string with a non-empty ``prefix:`` part
    """
    if not isinstance(key, str) or not key:
        return False

    prefix, sep, rest = key.partition(":")
    return bool(prefix) and bool(sep) and bool(rest)
