"""Tests for vmselector.validator module."""

from __future__ import annotations

import dataclasses
import os

import pytest

from vmselector.exceptions import (
    ExceedsSaneLimit,
    InvalidNameCharacters,
    InvalidResolution,
    MissingRequiredField,
    NotPositiveInteger,
    SensitiveShareRefused,
    ShareBlocked,
    ShareNotAccessible,
    UnsafeSharePath,
    ValidationErrors,
)
from vmselector.models import Limits, RawInput
from vmselector.validator import (
    _is_sensitive,
    validate,
    validate_name,
    validate_positive_int,
    validate_resolution,
    validate_share,
)

LIMITS = Limits()
SIZE_CASES = [("ram_gb", 1024), ("cpu_cores", 128), ("storage_gb", 10000)]


class TestValidatePositiveInt:
    @pytest.mark.parametrize("field,limit", SIZE_CASES)
    @pytest.mark.parametrize("value", [0, -1, -100, "0", "-5"])
    def test_non_positive_rejected(self, field, limit, value):
        with pytest.raises(NotPositiveInteger, match="must be a positive integer"):
            validate_positive_int(field, value, limit)

    @pytest.mark.parametrize("value", ["abc", "1.5", "+5", "", " ", "1e3", "８", True])
    def test_non_integer_rejected(self, value):
        with pytest.raises(NotPositiveInteger):
            validate_positive_int("ram_gb", value, 1024)

    @pytest.mark.parametrize("field,limit", SIZE_CASES)
    def test_above_ceiling_rejected(self, field, limit):
        with pytest.raises(ExceedsSaneLimit, match="seems excessive") as exc:
            validate_positive_int(field, str(limit + 1), limit)
        assert exc.value.field == field

    @pytest.mark.parametrize("field,limit", SIZE_CASES)
    def test_at_and_below_ceiling_accepted(self, field, limit):
        assert validate_positive_int(field, str(limit), limit) == limit
        assert validate_positive_int(field, limit - 1, limit) == limit - 1

    def test_surrounding_whitespace_tolerated(self):
        assert validate_positive_int("cpu_cores", " 8 ", 128) == 8

    def test_error_carries_field_and_value(self):
        with pytest.raises(NotPositiveInteger) as exc:
            validate_positive_int("ram_gb", "0", 1024)
        assert exc.value.field == "ram_gb"
        assert exc.value.value == "0"
        assert "RAM must be a positive integer. Got: '0'" in str(exc.value)


class TestValidateName:
    def test_default_when_absent(self):
        assert validate_name(None) == "vm"

    @pytest.mark.parametrize("name", ["dev_env-2024", "vm", "A", "test-integration", "x_1"])
    def test_valid_names(self, name):
        assert validate_name(name) == name

    @pytest.mark.parametrize("name", ["invalid name", "a/b", "", "vm.1", "näme", "vm$", "../etc", "vm\n"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidNameCharacters, match="only letters, numbers, hyphens, and underscores"):
            validate_name(name)


class TestValidateResolution:
    def test_absent_is_none(self):
        assert validate_resolution(None) is None
        assert validate_resolution("  ") is None

    def test_valid(self):
        assert validate_resolution("1920x1080") == "1920x1080"

    @pytest.mark.parametrize("value", ["1920", "1920X1080", "axb", "1920x1080x3"])
    def test_invalid(self, value):
        with pytest.raises(InvalidResolution):
            validate_resolution(value)


class TestValidateShare:
    @pytest.mark.parametrize("mode", ["read-write", "read-only"])
    def test_missing_directory_rejected(self, tmp_path, mode):
        missing = tmp_path / "nonexistent"
        with pytest.raises(ShareNotAccessible, match="does not exist or is not accessible"):
            validate_share(str(missing), mode)

    @pytest.mark.parametrize("mode", ["read-write", "read-only"])
    def test_existing_directory_accepted(self, tmp_path, mode):
        share = tmp_path / "data"
        share.mkdir()
        assert validate_share(str(share), mode) == os.path.realpath(share)

    def test_regular_file_rejected(self, tmp_path):
        file_path = tmp_path / "file.txt"
        file_path.write_text("x")
        with pytest.raises(ShareNotAccessible):
            validate_share(str(file_path), "read-only")

    def test_field_reflects_mode(self, tmp_path):
        with pytest.raises(ShareNotAccessible) as exc:
            validate_share(str(tmp_path / "nope"), "read-only")
        assert exc.value.field == "ro_shares"

    @pytest.mark.parametrize("suffix", ['with"quote', "with$dollar", "with`tick", "with\\slash"])
    def test_unsafe_characters_rejected(self, tmp_path, suffix):
        with pytest.raises(UnsafeSharePath):
            validate_share(str(tmp_path / suffix), "read-write")

    @pytest.mark.parametrize("path", ["/", "/proc"])
    def test_blocked_directories(self, path):
        with pytest.raises(ShareBlocked):
            validate_share(path, "read-only", allow_sensitive=True)

    def test_sensitive_directory_refused_by_default(self):
        with pytest.raises(SensitiveShareRefused, match="--allow-sensitive-share"):
            validate_share("/etc", "read-only")

    def test_sensitive_directory_allowed_explicitly(self):
        assert validate_share("/etc", "read-only", allow_sensitive=True) == os.path.realpath("/etc")

    def test_sensitive_directory_confirm_callback(self):
        calls = []

        def _confirm(path, mode):
            calls.append((path, mode))
            return True

        assert validate_share("/etc", "read-write", confirm=_confirm) == os.path.realpath("/etc")
        assert calls == [(os.path.realpath("/etc"), "read-write")]

    def test_symlink_into_sensitive_directory_refused(self, tmp_path):
        link = tmp_path / "innocent"
        link.symlink_to("/etc")
        with pytest.raises(SensitiveShareRefused):
            validate_share(str(link), "read-only")


class TestIsSensitive:
    @pytest.mark.parametrize("path", ["/etc", "/etc/nginx", "/root", "/usr/lib", "/home", "/home/alice"])
    def test_sensitive(self, path):
        assert _is_sensitive(path)

    @pytest.mark.parametrize("path", ["/tmp/x", "/home/alice/projects", "/srv/data", "/etcetera"])
    def test_not_sensitive(self, path):
        assert not _is_sensitive(path)


class TestValidate:
    def test_valid_input_produces_frozen_config(self, share_dirs):
        rw, ro = share_dirs
        raw = RawInput(ram="16", cpu="8", storage="200", name="complex-test", rw_shares=[rw], ro_shares=[ro], overlay=True)
        cfg = validate(raw, LIMITS)
        assert cfg.ram_gb == 16
        assert cfg.cpu_cores == 8
        assert cfg.storage_gb == 200
        assert cfg.name == "complex-test"
        assert cfg.overlay is True
        assert cfg.rw_shares == (os.path.realpath(rw),)
        assert cfg.ro_shares == (os.path.realpath(ro),)
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.name = "other"  # type: ignore[misc]

    def test_default_name(self):
        cfg = validate(RawInput(ram=4, cpu=2, storage=50))
        assert cfg.name == "vm"
        assert cfg.artifact_name == "run-vm-vm"

    def test_collects_every_failure(self, tmp_path):
        raw = RawInput(
            ram="0",
            cpu="500",
            storage=None,
            name="invalid name",
            rw_shares=[str(tmp_path / "missing")],
            resolution="big",
        )
        with pytest.raises(ValidationErrors) as exc:
            validate(raw, LIMITS)
        kinds = sorted(type(err).__name__ for err in exc.value.errors)
        assert kinds == [
            "ExceedsSaneLimit",
            "InvalidNameCharacters",
            "InvalidResolution",
            "MissingRequiredField",
            "NotPositiveInteger",
            "ShareNotAccessible",
        ]

    def test_missing_sizes_reported(self):
        with pytest.raises(ValidationErrors) as exc:
            validate(RawInput())
        assert all(isinstance(err, MissingRequiredField) for err in exc.value.errors)
        assert [err.field for err in exc.value.errors] == ["ram_gb", "cpu_cores", "storage_gb"]

    def test_custom_limits_apply(self):
        with pytest.raises(ValidationErrors) as exc:
            validate(RawInput(ram="64", cpu="2", storage="50"), Limits(ram_gb=32))
        assert isinstance(exc.value.errors[0], ExceedsSaneLimit)

    def test_share_order_preserved(self, tmp_path):
        paths = []
        for label in ("b", "a", "c"):
            path = tmp_path / label
            path.mkdir()
            paths.append(str(path))
        cfg = validate(RawInput(ram=4, cpu=2, storage=50, rw_shares=paths))
        assert [os.path.basename(p) for p in cfg.rw_shares] == ["b", "a", "c"]

    def test_sensitive_share_allowed_by_raw_flag(self):
        cfg = validate(RawInput(ram=4, cpu=2, storage=50, ro_shares=["/etc"], allow_sensitive=True))
        assert cfg.ro_shares == (os.path.realpath("/etc"),)
