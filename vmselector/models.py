"""Data models for nix-vm-selector."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Tuple, Union

from vmselector.constants import DEFAULT_LIMITS, MOUNT_ROOT_RO, MOUNT_ROOT_RW

RawValue = Union[str, int, None]


def guest_mount_path(host_path: str, readonly: bool) -> str:
    """Return the guest mount point for a host directory.

    The whole host path is kept under the mount root so that two shares
    with the same basename never collide.
    """
    root = MOUNT_ROOT_RO if readonly else MOUNT_ROOT_RW
    return root + "/" + host_path.lstrip("/")


class ShareMapping(NamedTuple):
    host: str
    guest: str
    readonly: bool


@dataclass
class RawInput:
    """Unvalidated request as produced by either input source."""

    ram: RawValue = None
    cpu: RawValue = None
    storage: RawValue = None
    name: Optional[str] = None
    rw_shares: List[str] = field(default_factory=list)
    ro_shares: List[str] = field(default_factory=list)
    overlay: bool = False
    desktop: bool = False
    audio: bool = False
    resolution: Optional[str] = None
    allow_sensitive: bool = False


@dataclass(frozen=True)
class Limits:
    ram_gb: int = DEFAULT_LIMITS["ram_gb"]
    cpu_cores: int = DEFAULT_LIMITS["cpu_cores"]
    storage_gb: int = DEFAULT_LIMITS["storage_gb"]

    def for_field(self, name: str) -> int:
        return getattr(self, name)


@dataclass(frozen=True)
class Preset:
    key: str
    description: str
    ram_gb: int
    cpu_cores: int
    storage_gb: int

    def label(self) -> str:
        return f"{self.key}: {self.ram_gb}GB RAM, {self.cpu_cores} CPU, {self.storage_gb}GB disk ({self.description})"


@dataclass(frozen=True)
class VMConfig:
    name: str
    ram_gb: int
    cpu_cores: int
    storage_gb: int
    overlay: bool = False
    rw_shares: Tuple[str, ...] = ()
    ro_shares: Tuple[str, ...] = ()
    desktop: bool = False
    audio: bool = False
    resolution: Optional[str] = None

    @property
    def artifact_name(self) -> str:
        return f"run-{self.name}-vm"

    @property
    def script_name(self) -> str:
        return f"start-{self.name}.sh"

    def share_mappings(self) -> Iterator[ShareMapping]:
        for path in self.rw_shares:
            yield ShareMapping(path, guest_mount_path(path, readonly=False), False)
        for path in self.ro_shares:
            yield ShareMapping(path, guest_mount_path(path, readonly=True), True)

    def summary(self) -> str:
        text = f"{self.ram_gb}GB RAM, {self.cpu_cores} CPU cores, {self.storage_gb}GB storage"
        if self.rw_shares:
            text += f", RW shares: {len(self.rw_shares)}"
        if self.ro_shares:
            text += f", RO shares: {len(self.ro_shares)}"
        return text

    def display_status(self) -> str:
        if not self.desktop:
            return "terminal"
        return f"desktop ({self.resolution or 'auto'})"


@dataclass(frozen=True)
class BuildResult:
    artifact_name: str
    artifact_path: Path
    workdir: Path
