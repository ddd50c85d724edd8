"""Preset/limit loading and flag normalization for nix-vm-selector."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmselector.constants import (
    DEFAULT_LIMITS,
    DEFAULT_PRESETS_PATH,
    FLAKE_ENV,
    INTERACTIVE_ENV,
    LEGACY_INTERACTIVE_ENV,
    LIMIT_ENV_VARS,
    PRESETS_ENV,
    REMOTE_FLAKE_PREFIXES,
    REMOTE_WORKDIR_PARTS,
)
from vmselector.exceptions import SelectorError
from vmselector.models import Limits, Preset, RawInput
from vmselector.utils import env_disables, get_env, has_controlling_tty, log, parse_int_env

# Flags whose presence selects direct mode.
CONFIG_FLAGS = (
    "ram",
    "cpu",
    "storage",
    "name",
    "share_rw",
    "share_ro",
    "overlay",
    "desktop",
    "audio",
    "resolution",
    "preset",
)


@dataclass(frozen=True)
class SelectorConfig:
    presets: Dict[str, Preset]
    limits: Limits


def _positive_int(value: object, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise SelectorError(f"{where} must be a positive integer (got {value!r})")
    return value


def load_selector_config(config_path: Optional[Path] = None) -> SelectorConfig:
    """Load presets and size ceilings, applying ``VM_MAX_*`` overrides."""
    if config_path is None:
        override = get_env(PRESETS_ENV)
        config_path = Path(override).expanduser() if override else DEFAULT_PRESETS_PATH
    if not config_path.exists():
        raise SelectorError(f"Preset config missing: {config_path}")
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise SelectorError(f"Preset config {config_path} contains invalid YAML: {exc}")
    if not isinstance(data, dict):
        raise SelectorError(f"Preset config {config_path} must contain a YAML mapping")

    presets: Dict[str, Preset] = {}
    for key, info in (data.get("presets") or {}).items():
        if not isinstance(info, dict):
            raise SelectorError(f"Preset '{key}' must be a mapping")
        presets[str(key)] = Preset(
            key=str(key),
            description=str(info.get("description", "")),
            ram_gb=_positive_int(info.get("ram_gb"), f"Preset '{key}' ram_gb"),
            cpu_cores=_positive_int(info.get("cpu_cores"), f"Preset '{key}' cpu_cores"),
            storage_gb=_positive_int(info.get("storage_gb"), f"Preset '{key}' storage_gb"),
        )

    limits_data = data.get("limits") or {}
    ceilings = {}
    for field, default in DEFAULT_LIMITS.items():
        base = _positive_int(limits_data.get(field, default), f"limits.{field}")
        ceilings[field] = parse_int_env(LIMIT_ENV_VARS[field], base)
    return SelectorConfig(presets=presets, limits=Limits(**ceilings))


def has_config_flags(args: argparse.Namespace) -> bool:
    for flag in CONFIG_FLAGS:
        value = getattr(args, flag, None)
        if value not in (None, False, []):
            return True
    return False


def raw_input_from_args(args: argparse.Namespace, presets: Dict[str, Preset]) -> RawInput:
    """Normalize parsed flags into a RawInput; explicit sizes beat the preset."""
    ram, cpu, storage = args.ram, args.cpu, args.storage
    if args.preset is not None:
        preset = presets.get(args.preset)
        if preset is None:
            available = ", ".join(sorted(presets)) or "<none>"
            raise SelectorError(f"Unknown preset '{args.preset}'. Available presets: {available}")
        ram = ram if ram is not None else preset.ram_gb
        cpu = cpu if cpu is not None else preset.cpu_cores
        storage = storage if storage is not None else preset.storage_gb
    return RawInput(
        ram=ram,
        cpu=cpu,
        storage=storage,
        name=args.name,
        rw_shares=list(args.share_rw or []),
        ro_shares=list(args.share_ro or []),
        overlay=bool(args.overlay),
        desktop=bool(args.desktop),
        audio=bool(args.audio),
        resolution=args.resolution,
        allow_sensitive=bool(args.allow_sensitive_share),
    )


def interactive_available() -> bool:
    """Return True when the menu may be shown (TTY and not disabled by env)."""
    if env_disables(INTERACTIVE_ENV) or env_disables(LEGACY_INTERACTIVE_ENV):
        log("DEBUG", f"Interactive mode disabled by {INTERACTIVE_ENV}/{LEGACY_INTERACTIVE_ENV}")
        return False
    return has_controlling_tty()


def resolve_flake_ref(explicit: Optional[str], workdir: Path) -> str:
    """Pick the flake reference: flag, then ``VM_FLAKE``, then a local flake."""
    if explicit:
        return explicit
    from_env = (get_env(FLAKE_ENV) or "").strip()
    if from_env:
        return from_env
    if (workdir / "flake.nix").is_file():
        return f"git+file://{workdir.resolve()}"
    raise SelectorError(
        f"No flake reference: pass --flake REF, set {FLAKE_ENV}, or run from a directory containing flake.nix"
    )


def is_remote_flake(flake_ref: str) -> bool:
    return flake_ref.startswith(REMOTE_FLAKE_PREFIXES)


def default_workdir(flake_ref: str, cwd: Path) -> Path:
    """Remote flakes build in ``~/.local/share/ai-vms``; local ones in *cwd*."""
    if is_remote_flake(flake_ref):
        return Path.home().joinpath(*REMOTE_WORKDIR_PARTS)
    return cwd
