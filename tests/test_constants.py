"""Tests for vmselector.constants module."""

from pathlib import Path

from vmselector.constants import (
    BLOCKED_DIRS,
    DEFAULT_LIMITS,
    DEFAULT_PRESETS_PATH,
    LIMIT_ENV_VARS,
    POSITIVE_INT_RE,
    RESOLUTION_RE,
    SENSITIVE_DIRS,
    TRUTHY,
    VM_NAME_RE,
)


class TestConstants:
    def test_presets_file_ships_with_package(self):
        assert isinstance(DEFAULT_PRESETS_PATH, Path)
        assert DEFAULT_PRESETS_PATH.is_file()

    def test_truthy_values(self):
        assert "1" in TRUTHY
        assert "yes" in TRUTHY
        assert "false" not in TRUTHY

    def test_vm_name_regex(self):
        assert VM_NAME_RE.match("dev_env-2024")
        assert not VM_NAME_RE.match("invalid name")
        assert not VM_NAME_RE.match("")
        assert not VM_NAME_RE.match("vm\n")

    def test_positive_int_regex_is_ascii_only(self):
        assert POSITIVE_INT_RE.match("42")
        assert not POSITIVE_INT_RE.match("٤")  # Arabic-Indic digit
        assert not POSITIVE_INT_RE.match("-1")

    def test_resolution_regex(self):
        assert RESOLUTION_RE.match("1920x1080")
        assert not RESOLUTION_RE.match("1920X1080")

    def test_limits_have_env_overrides(self):
        assert set(DEFAULT_LIMITS) == set(LIMIT_ENV_VARS)

    def test_blocked_and_sensitive_disjoint(self):
        assert not set(BLOCKED_DIRS) & set(SENSITIVE_DIRS)
