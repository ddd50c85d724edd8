"""Host capacity checks run before an expensive build."""

from __future__ import annotations

import math
import os
import shutil
from pathlib import Path
from typing import Optional

from vmselector.constants import DISK_OVERHEAD_RATIO, HOST_USAGE_WARN_RATIO
from vmselector.exceptions import PreflightError
from vmselector.models import VMConfig
from vmselector.utils import log

_GIB = 1024**3


def get_total_memory_gb() -> Optional[float]:
    """Read MemTotal from /proc/meminfo; None when unavailable."""
    try:
        with open("/proc/meminfo") as f:
            for line in f:
                if line.startswith("MemTotal:"):
                    kib = int(line.split()[1])
                    return kib * 1024 / _GIB
    except (OSError, ValueError, IndexError):
        return None
    return None


def get_cpu_count() -> Optional[int]:
    return os.cpu_count()


def get_available_disk_gb(path: Path) -> Optional[float]:
    try:
        return shutil.disk_usage(path).free / _GIB
    except OSError:
        return None


def check_host_capacity(cfg: VMConfig, workdir: Path) -> None:
    """Warn about oversubscription and fail when the disk cannot fit the VM."""
    total_mem = get_total_memory_gb()
    if total_mem is not None:
        threshold = int(total_mem * HOST_USAGE_WARN_RATIO)
        if cfg.ram_gb > threshold:
            log(
                "WARN",
                f"Requested RAM ({cfg.ram_gb}GB) exceeds 80% of system RAM ({total_mem:.0f}GB); "
                "this may cause swapping or instability",
            )

    cpus = get_cpu_count()
    if cpus:
        threshold = max(1, int(cpus * HOST_USAGE_WARN_RATIO))
        if cfg.cpu_cores > threshold:
            log(
                "WARN",
                f"Requested CPU cores ({cfg.cpu_cores}) exceed 80% of system CPUs ({cpus}); "
                "host performance may degrade",
            )

    available = get_available_disk_gb(workdir)
    if available is None:
        log("DEBUG", f"Could not determine free space in {workdir}")
        return
    required = math.ceil(cfg.storage_gb * DISK_OVERHEAD_RATIO)
    if available < required:
        raise PreflightError(
            f"Insufficient disk space in {workdir}: available {available:.0f}GB, "
            f"required {required}GB ({cfg.storage_gb}GB + 20% overhead)"
        )
    if cfg.storage_gb > available * HOST_USAGE_WARN_RATIO:
        log(
            "WARN",
            f"Requested storage ({cfg.storage_gb}GB) will use more than 80% of free space ({available:.0f}GB)",
        )
