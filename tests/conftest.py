"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from vmselector.models import BuildResult, VMConfig

# Environment variables the selector reads; cleared so host settings never leak in.
_SELECTOR_ENV_VARS = [
    "VM_SELECTOR_INTERACTIVE",
    "INTERACTIVE",
    "VM_FLAKE",
    "VM_PRESETS",
    "VM_MAX_RAM_GB",
    "VM_MAX_CPU_CORES",
    "VM_MAX_STORAGE_GB",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _SELECTOR_ENV_VARS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def default_vm_config() -> VMConfig:
    """Return a minimal VMConfig with sensible defaults."""
    return VMConfig(name="test-vm", ram_gb=4, cpu_cores=2, storage_gb=50)


def _make_artifact(workdir: Path, name: str) -> Path:
    """Create an executable ``result/bin/run-<name>-vm`` like a Nix build would."""
    bin_dir = workdir / "result" / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    artifact = bin_dir / f"run-{name}-vm"
    artifact.write_text("#!/bin/sh\nexit 0\n")
    os.chmod(artifact, 0o755)
    return artifact


@pytest.fixture
def make_artifact():
    return _make_artifact


@pytest.fixture
def build_for(tmp_path):
    """Factory returning a BuildResult whose artifact really exists under tmp_path."""

    def _build(cfg: VMConfig) -> BuildResult:
        _make_artifact(tmp_path, cfg.name)
        return BuildResult(
            artifact_name=cfg.artifact_name,
            artifact_path=tmp_path / "result" / "bin" / cfg.artifact_name,
            workdir=tmp_path,
        )

    return _build


@pytest.fixture
def share_dirs(tmp_path):
    """Two existing host directories usable as shares."""
    rw = tmp_path / "share-rw"
    ro = tmp_path / "share-ro"
    rw.mkdir()
    ro.mkdir()
    return str(rw), str(ro)
