"""Global constants and defaults for nix-vm-selector."""

from __future__ import annotations

import os
import re
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_PRESETS_PATH = PACKAGE_DIR / "presets.yaml"
TEMPLATE_NAME = "start-vm.sh.j2"

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}

DEFAULT_VM_NAME = "vm"
VM_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+\Z")
POSITIVE_INT_RE = re.compile(r"^[0-9]+$", re.ASCII)
RESOLUTION_RE = re.compile(r"^[0-9]+x[0-9]+$", re.ASCII)
CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]+")

# Ceilings catch unit typos (MB vs GB); overridable via presets.yaml or env.
DEFAULT_LIMITS = {
    "ram_gb": 1024,
    "cpu_cores": 128,
    "storage_gb": 10000,
}
LIMIT_ENV_VARS = {
    "ram_gb": "VM_MAX_RAM_GB",
    "cpu_cores": "VM_MAX_CPU_CORES",
    "storage_gb": "VM_MAX_STORAGE_GB",
}
FIELD_LABELS = {
    "ram_gb": "RAM",
    "cpu_cores": "CPU",
    "storage_gb": "Storage",
    "name": "VM name",
    "rw_shares": "Read-write share",
    "ro_shares": "Read-only share",
    "resolution": "Resolution",
}
FIELD_UNITS = {
    "ram_gb": "GB",
    "cpu_cores": " cores",
    "storage_gb": "GB",
}

# Guest mount roots; the full host path is appended below the root.
MOUNT_ROOT_RW = "/mnt/host-rw"
MOUNT_ROOT_RO = "/mnt/host-ro"

BLOCKED_DIRS = ("/", "/boot", "/sys", "/proc", "/dev")
SENSITIVE_DIRS = (
    "/root",
    "/etc",
    "/var",
    "/home",
    "/usr",
    "/bin",
    "/sbin",
    "/lib",
    "/lib64",
    "/opt",
)
# Characters that would break a Nix string literal or a double-quoted shell word.
UNSAFE_PATH_CHARS = ('"', "$", "`", "\\", "\n", "\x00")

INTERACTIVE_ENV = "VM_SELECTOR_INTERACTIVE"
LEGACY_INTERACTIVE_ENV = "INTERACTIVE"
PRESETS_ENV = "VM_PRESETS"
FLAKE_ENV = "VM_FLAKE"

# Remote flakes build under the user data dir instead of the caller's cwd.
REMOTE_FLAKE_PREFIXES = ("github:",)
REMOTE_WORKDIR_PARTS = (".local", "share", "ai-vms")

NIX_BINARY = os.environ.get("NIX_BINARY", "nix")
RESULT_LINK = "result"
# Guest SSH forward the VM flake expects; forwarding itself is configured there.
DEFAULT_PORT_FORWARDS = ((2222, 22),)
# Extra headroom over the requested disk for qcow2 metadata.
DISK_OVERHEAD_RATIO = 1.2
HOST_USAGE_WARN_RATIO = 0.8
BUILD_OUTPUT_TAIL_LINES = 40

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY
