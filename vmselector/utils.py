"""Utility functions for nix-vm-selector."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from vmselector.constants import _LOG_VERBOSE, FALSY
from vmselector.exceptions import SelectorError


def log(level: str, message: str) -> None:
    """Lightweight structured logging with colour; problems go to stderr."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    stream = sys.stderr if level in ("ERROR", "WARN") else sys.stdout
    print(f"{colour}[{level}]{reset} {message}", file=stream, flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def env_disables(name: str) -> bool:
    """Return True when *name* is set to an explicit falsy value."""
    raw = os.environ.get(name)
    return raw is not None and raw.strip().lower() in FALSY


def parse_int_env(name: str, default: int, min_val: int = 1) -> int:
    raw = get_env(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise SelectorError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise SelectorError(f"{name} must be >= {min_val} (got {value})")
    return value


def has_controlling_tty() -> bool:
    """Return True if both stdin and stdout are attached to a TTY."""
    for stream in (sys.stdin, sys.stdout):
        try:
            if not stream.isatty():
                return False
        except (AttributeError, ValueError):
            return False
    return True


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def is_within(path: str, directory: str) -> bool:
    """Return True if *path* equals *directory* or lives below it."""
    if directory == "/":
        return True
    return path == directory or path.startswith(directory.rstrip("/") + "/")
