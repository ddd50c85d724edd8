"""CLI entry point for nix-vm-selector."""

from __future__ import annotations

import argparse
import dataclasses
import os
from pathlib import Path
from typing import Dict, List, Optional

from vmselector.builder import BuildOrchestrator, NixBuildBackend
from vmselector.config import (
    default_workdir,
    has_config_flags,
    interactive_available,
    load_selector_config,
    raw_input_from_args,
    resolve_flake_ref,
)
from vmselector.constants import CONTROL_CHARS_RE, FLAKE_ENV, INTERACTIVE_ENV
from vmselector.exceptions import (
    BuildFailed,
    GenerationError,
    InteractiveUnavailable,
    PreflightError,
    SelectorError,
    ValidationErrors,
)
from vmselector.host import check_host_capacity
from vmselector.menu import Cancelled, InteractiveMenu
from vmselector.models import Preset, VMConfig
from vmselector.script import StartupScriptGenerator, link_startup_script
from vmselector.utils import ensure_directory, log
from vmselector.validator import validate

EPILOG = f"""\
examples:
  nix-vm-selector                                   interactive menu
  nix-vm-selector --ram 8 --cpu 4 --storage 100     direct mode
  nix-vm-selector --preset large --name dev-vm --overlay
  nix-vm-selector --ram 16 --cpu 8 --storage 200 --desktop --resolution 2560x1440
  nix-vm-selector --preset small --share-rw ~/projects --share-ro /srv/data

shares are mounted at /mnt/host-rw/<host path> and /mnt/host-ro/<host path>.
Blocked from sharing: / /boot /sys /proc /dev. Sensitive directories
(/root /etc /var /usr /bin /sbin /lib /lib64 /opt and whole home trees)
need --allow-sensitive-share.

environment:
  {INTERACTIVE_ENV}=0   never show the menu (automated callers)
  {FLAKE_ENV}=REF              flake providing lib.<system>.makeCustomVM
  VM_PRESETS=PATH             alternative presets/limits YAML
  VM_MAX_RAM_GB, VM_MAX_CPU_CORES, VM_MAX_STORAGE_GB   size ceilings

Remote (github:) flakes build in ~/.local/share/ai-vms and get a start-<name>.sh
symlink in the current directory. Use start-<name>.sh to restart a previously
built VM.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nix-vm-selector",
        description="Build a NixOS VM with the chosen resources and write a reusable start-<name>.sh",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    hardware = parser.add_argument_group("hardware")
    hardware.add_argument("-r", "--ram", metavar="N", help="RAM in GB")
    hardware.add_argument("-c", "--cpu", metavar="N", help="CPU core count")
    hardware.add_argument("-s", "--storage", metavar="N", help="disk size in GB")
    hardware.add_argument("--preset", metavar="KEY", help="take sizes from a preset (see --list-presets)")

    identity = parser.add_argument_group("identity and features")
    identity.add_argument("-n", "--name", metavar="NAME", help="VM name, [A-Za-z0-9_-]+ (default: vm)")
    identity.add_argument("-o", "--overlay", action="store_true", help="overlay filesystem (clean state each boot)")
    identity.add_argument("-d", "--desktop", action="store_true", help="enable the graphical desktop")
    identity.add_argument("--resolution", metavar="WxH", help="desktop resolution, e.g. 1920x1080")
    identity.add_argument("-a", "--audio", action="store_true", help="enable audio passthrough")

    shares = parser.add_argument_group("host integration")
    shares.add_argument("--share-rw", metavar="PATH", action="append", help="share a directory read-write (repeatable)")
    shares.add_argument("--share-ro", metavar="PATH", action="append", help="share a directory read-only (repeatable)")
    shares.add_argument(
        "--allow-sensitive-share",
        action="store_true",
        help="allow shares inside sensitive system or home directories",
    )

    build = parser.add_argument_group("build")
    build.add_argument("--flake", metavar="REF", help=f"flake reference (default: ${FLAKE_ENV} or ./flake.nix)")
    build.add_argument("--output-dir", metavar="DIR", help="where the build result and script go (default: cwd, or ~/.local/share/ai-vms for github: flakes)")

    info = parser.add_argument_group("information")
    info.add_argument("--list-presets", action="store_true", help="list size presets and exit")
    info.add_argument("--show-config", action="store_true", help="show the validated configuration and exit")
    info.add_argument("--dry-run", action="store_true", help="validate and print the build command without building")
    return parser


def list_presets(presets: Dict[str, Preset]) -> None:
    if not presets:
        log("WARN", "No presets defined")
        return
    width = max(len(key) for key in presets)
    for key, preset in presets.items():
        print(
            f"  {key:<{width}}  {preset.ram_gb}GB RAM, {preset.cpu_cores} CPU, "
            f"{preset.storage_gb}GB disk  ({preset.description})"
        )


def show_config(cfg: VMConfig) -> None:
    """Print the validated VM configuration."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if isinstance(value, tuple):
            print(f"  {field.name}:")
            for item in value:
                print(f"    - {item}")
        else:
            print(f"  {field.name}: {value}")
    print(f"  artifact: {cfg.artifact_name}")
    print(f"  script: {cfg.script_name}")
    for mapping in cfg.share_mappings():
        suffix = " (read-only)" if mapping.readonly else ""
        print(f"  share: {mapping.host} → VM: {mapping.guest}{suffix}")


def _collect_config(args: argparse.Namespace, menu_holder: List[InteractiveMenu]) -> VMConfig:
    settings = load_selector_config()
    if has_config_flags(args):
        raw = raw_input_from_args(args, settings.presets)
    else:
        if not interactive_available():
            raise InteractiveUnavailable(
                "No configuration flags given and no interactive terminal available; "
                f"pass --ram/--cpu/--storage or --preset (interactive mode is off when {INTERACTIVE_ENV}=0)"
            )
        menu = InteractiveMenu(settings.presets, settings.limits)
        menu_holder.append(menu)
        raw = menu.collect()
        raw.allow_sensitive = raw.allow_sensitive or bool(args.allow_sensitive_share)
    return validate(raw, settings.limits)


def _prepare_workdir(workdir: Path, create: bool) -> None:
    """Reject work directories the startup script could not be written to, before building."""
    if CONTROL_CHARS_RE.search(str(workdir)):
        raise GenerationError(f"Work directory path contains control characters: {str(workdir)!r}")
    if workdir.is_symlink():
        raise GenerationError(f"Work directory '{workdir}' is a symbolic link; refusing to build there")
    if not create:
        return
    try:
        ensure_directory(workdir)
    except OSError as exc:
        raise GenerationError(f"Failed to create work directory {workdir}: {exc}")
    if not os.access(workdir, os.W_OK | os.X_OK):
        raise GenerationError(f"Work directory is not writable: {workdir}")


def run_pipeline(
    cfg: VMConfig,
    backend: NixBuildBackend,
    workdir: Path,
    menu: Optional[InteractiveMenu] = None,
    link_dir: Optional[Path] = None,
) -> int:
    """Build the VM and write its startup script; returns the exit code."""
    log("INFO", f"Starting VM build: {cfg.summary()}")
    log(
        "INFO",
        f"Display: {cfg.display_status()}, Audio: {'enabled' if cfg.audio else 'disabled'}, "
        f"Overlay: {'enabled' if cfg.overlay else 'disabled'}",
    )
    try:
        check_host_capacity(cfg, workdir)
        build = BuildOrchestrator(backend).build(cfg)
    except PreflightError as exc:
        log("ERROR", str(exc))
        return 1
    except BuildFailed as exc:
        log("ERROR", str(exc))
        log("ERROR", "No startup script was written.")
        return 1

    script_path = workdir / cfg.script_name
    if menu is not None and script_path.exists() and not menu.confirm_overwrite(script_path):
        log("INFO", "VM was built but the startup script was not updated.")
        log("INFO", f"You can still run the VM with: {build.artifact_path}")
        return 0

    try:
        script_path = StartupScriptGenerator().write(cfg, build, workdir)
    except GenerationError as exc:
        log("ERROR", str(exc))
        log("ERROR", "The VM was built but NO startup script exists.")
        log("ERROR", f"Run the VM manually with: {build.artifact_path}")
        return 1

    if link_dir is not None:
        link_startup_script(script_path, link_dir)
    log("INFO", f"To start this VM later, run: {script_path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_presets:
        try:
            list_presets(load_selector_config().presets)
        except SelectorError as exc:
            log("ERROR", str(exc))
            return 1
        return 0

    menu_holder: List[InteractiveMenu] = []
    try:
        cfg = _collect_config(args, menu_holder)
    except Cancelled:
        print("Cancelled.")
        return 0
    except ValidationErrors as exc:
        for err in exc.errors:
            log("ERROR", f"{err.kind}: {err}")
        return 1
    except SelectorError as exc:
        log("ERROR", str(exc))
        return 1

    if cfg.resolution and not cfg.desktop:
        log("WARN", "--resolution only applies together with --desktop")

    if args.show_config:
        show_config(cfg)
        return 0

    cwd = Path(os.getcwd())
    explicit_dir = Path(args.output_dir).expanduser() if args.output_dir else None
    try:
        flake_ref = resolve_flake_ref(args.flake, explicit_dir or cwd)
        workdir = explicit_dir or default_workdir(flake_ref, cwd)
        _prepare_workdir(workdir, create=not args.dry_run)
    except SelectorError as exc:
        log("ERROR", str(exc))
        return 1
    link_dir = cwd if explicit_dir is None and workdir != cwd else None
    if link_dir is not None:
        log("INFO", f"VM files will be created in: {workdir}")

    backend = NixBuildBackend(flake_ref, workdir)
    if args.dry_run:
        log("INFO", "=== Configuration ===")
        show_config(cfg)
        log("INFO", "=== Build command ===")
        cmd = backend.command(cfg)
        print(" ".join(cmd[:-1]) + " \\")
        print(cmd[-1], end="")
        log("INFO", f"=== Dry-run complete (nothing built, {cfg.script_name} not written) ===")
        return 0

    try:
        return run_pipeline(cfg, backend, workdir, menu_holder[0] if menu_holder else None, link_dir)
    except Cancelled:
        print("Cancelled.")
        return 0
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
