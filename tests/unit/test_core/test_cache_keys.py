"""Tests for devtools_mcp.core.cache_keys module."""

import os

import pytest

from devtools_mcp.core.cache_keys import (
    ARGS_HASH_LENGTH,
    build_cache_key,
    build_command_key,
    build_project_key,
    is_cache_key_valid,
)


class TestBuildCacheKey:
    """Tests for build_cache_key."""

    def test_key_shape(self, tmp_path):
        key = build_cache_key("test", {"verbose": True}, project_root=str(tmp_path))

        prefix, args_hash = key.rsplit(":", 1)
        assert prefix == f"test:{tmp_path}"
        assert len(args_hash) == ARGS_HASH_LENGTH
        int(args_hash, 16)

    def test_argument_order_does_not_matter(self, tmp_path):
        root = str(tmp_path)
        first = build_cache_key("lint", {"a": 1, "b": [1, 2]}, root)
        second = build_cache_key("lint", {"b": [1, 2], "a": 1}, root)
        assert first == second

    def test_different_args_different_key(self, tmp_path):
        root = str(tmp_path)
        assert build_cache_key("lint", {"fix": True}, root) != build_cache_key(
            "lint", {"fix": False}, root
        )

    def test_directory_arg_overrides_root(self, tmp_path):
        sub = tmp_path / "sub"
        key = build_cache_key("test", {"directory": str(sub)}, project_root="/elsewhere")
        assert key.startswith(f"test:{sub}:")

    def test_relative_directory_resolved(self):
        key = build_cache_key("version", {"directory": "."})
        assert key.startswith(f"version:{os.path.abspath('.')}:")

    def test_no_args(self, tmp_path):
        assert build_cache_key("project-info", None, str(tmp_path)) == build_cache_key(
            "project-info", {}, str(tmp_path)
        )


class TestSimpleKeys:
    def test_command_key(self):
        assert build_command_key("go") == "cmd:go"

    def test_project_key(self, tmp_path):
        assert build_project_key(str(tmp_path)) == f"project:{tmp_path}"


class TestIsCacheKeyValid:
    @pytest.mark.parametrize(
        "key",
        ["cmd:go", "project:/tmp/x", "test:/a:0123456789abcdef"],
    )
    def test_valid(self, key):
        assert is_cache_key_valid(key) is True

    @pytest.mark.parametrize("key", ["", "nocolon", ":missing-prefix", "prefix:", None, 42])
    def test_invalid(self, key):
        assert is_cache_key_valid(key) is False
