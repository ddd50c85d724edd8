"""Validation of raw operator input into a frozen VMConfig.

Every rule is a plain function that either returns the normalized value or
raises a specific :class:`ValidationError` subclass. :func:`validate` runs
all of them against one :class:`RawInput` and reports every failure at once.
Invalid input is rejected, never clamped.
"""

from __future__ import annotations

import os
from typing import Callable, List, Optional, Tuple

from vmselector.constants import (
    BLOCKED_DIRS,
    DEFAULT_VM_NAME,
    FIELD_LABELS,
    FIELD_UNITS,
    POSITIVE_INT_RE,
    RESOLUTION_RE,
    SENSITIVE_DIRS,
    UNSAFE_PATH_CHARS,
    VM_NAME_RE,
)
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
    ValidationError,
    ValidationErrors,
)
from vmselector.models import Limits, RawInput, RawValue, VMConfig
from vmselector.utils import is_within

# Called with (path, mode) for shares under a sensitive directory; True accepts.
SensitiveConfirm = Callable[[str, str], bool]

SIZE_FIELDS = ("ram_gb", "cpu_cores", "storage_gb")


def validate_positive_int(field: str, raw: RawValue, limit: int) -> int:
    label = FIELD_LABELS.get(field, field)
    if isinstance(raw, bool):
        raise NotPositiveInteger(field, raw, f"{label} must be a positive integer. Got: '{raw}'")
    if isinstance(raw, int):
        value = raw
    else:
        text = "" if raw is None else str(raw).strip()
        if not POSITIVE_INT_RE.match(text):
            raise NotPositiveInteger(field, raw, f"{label} must be a positive integer. Got: '{raw}'")
        value = int(text)
    if value < 1:
        raise NotPositiveInteger(field, raw, f"{label} must be a positive integer. Got: '{raw}'")
    if value > limit:
        unit = FIELD_UNITS.get(field, "")
        raise ExceedsSaneLimit(
            field,
            raw,
            f"{label} value seems excessive (>{limit}{unit}). Got: {value}{unit}",
        )
    return value


def validate_name(raw: Optional[str]) -> str:
    if raw is None:
        return DEFAULT_VM_NAME
    if not VM_NAME_RE.match(raw):
        raise InvalidNameCharacters(
            "name",
            raw,
            f"VM name '{raw}' must contain only letters, numbers, hyphens, and underscores",
        )
    return raw


def validate_resolution(raw: Optional[str]) -> Optional[str]:
    if raw is None or not raw.strip():
        return None
    text = raw.strip()
    if not RESOLUTION_RE.match(text):
        raise InvalidResolution(
            "resolution",
            raw,
            f"Resolution must be in format WIDTHxHEIGHT (e.g., 1920x1080). Got: '{raw}'",
        )
    return text


def _is_sensitive(path: str) -> bool:
    for directory in SENSITIVE_DIRS:
        if directory == "/home":
            # Whole home trees are sensitive; project directories inside one are not.
            if path == "/home" or os.path.dirname(path) == "/home":
                return True
        elif is_within(path, directory):
            return True
    return False


def validate_share(
    raw: str,
    mode: str,
    allow_sensitive: bool = False,
    confirm: Optional[SensitiveConfirm] = None,
) -> str:
    """Return the resolved absolute path of a host directory to share.

    *mode* is ``"read-write"`` or ``"read-only"``; both modes are checked the
    same way and the mode only shows up in messages.
    """
    field = "rw_shares" if mode == "read-write" else "ro_shares"
    raw = os.fspath(raw)
    if any(char in raw for char in UNSAFE_PATH_CHARS):
        raise UnsafeSharePath(
            field,
            raw,
            f"Share path {raw!r} contains characters that are not allowed: \" $ ` \\ or control characters",
        )

    expanded = os.path.expanduser(raw)
    if not os.path.isdir(expanded) or not os.access(expanded, os.R_OK | os.X_OK):
        raise ShareNotAccessible(field, raw, f"Directory '{raw}' does not exist or is not accessible")

    requested = os.path.abspath(expanded)
    resolved = os.path.realpath(expanded)
    for candidate in (requested, resolved):
        if candidate in BLOCKED_DIRS:
            raise ShareBlocked(
                field,
                raw,
                f"Cannot share '{candidate}': this directory is critical to system operation. "
                "Share a specific subdirectory instead.",
            )

    if _is_sensitive(requested) or _is_sensitive(resolved):
        accepted = allow_sensitive or (confirm is not None and confirm(resolved, mode))
        if not accepted:
            raise SensitiveShareRefused(
                field,
                raw,
                f"Sharing '{resolved}' ({mode}) exposes sensitive system or user data; "
                "pass --allow-sensitive-share to share it anyway",
            )
    return resolved


def _validate_shares(
    paths: List[str],
    mode: str,
    raw: RawInput,
    confirm: Optional[SensitiveConfirm],
    errors: List[ValidationError],
) -> Tuple[str, ...]:
    accepted = []
    for path in paths:
        try:
            accepted.append(validate_share(path, mode, raw.allow_sensitive, confirm))
        except ValidationError as exc:
            errors.append(exc)
    return tuple(accepted)


def validate(
    raw: RawInput,
    limits: Optional[Limits] = None,
    confirm: Optional[SensitiveConfirm] = None,
) -> VMConfig:
    """Validate *raw* against every rule and return a frozen VMConfig.

    Raises :class:`ValidationErrors` listing all failures.
    """
    limits = limits or Limits()
    errors: List[ValidationError] = []
    sizes = {}

    for field, value in zip(SIZE_FIELDS, (raw.ram, raw.cpu, raw.storage)):
        if value is None or (isinstance(value, str) and not value.strip()):
            label = FIELD_LABELS[field]
            errors.append(
                MissingRequiredField(
                    field,
                    value,
                    f"{label} is required in direct mode (pass it explicitly or use --preset)",
                )
            )
            continue
        try:
            sizes[field] = validate_positive_int(field, value, limits.for_field(field))
        except ValidationError as exc:
            errors.append(exc)

    name = DEFAULT_VM_NAME
    try:
        name = validate_name(raw.name)
    except ValidationError as exc:
        errors.append(exc)

    resolution = None
    try:
        resolution = validate_resolution(raw.resolution)
    except ValidationError as exc:
        errors.append(exc)

    rw_shares = _validate_shares(raw.rw_shares, "read-write", raw, confirm, errors)
    ro_shares = _validate_shares(raw.ro_shares, "read-only", raw, confirm, errors)

    if errors:
        raise ValidationErrors(errors)

    return VMConfig(
        name=name,
        ram_gb=sizes["ram_gb"],
        cpu_cores=sizes["cpu_cores"],
        storage_gb=sizes["storage_gb"],
        overlay=bool(raw.overlay),
        rw_shares=rw_shares,
        ro_shares=ro_shares,
        desktop=bool(raw.desktop),
        audio=bool(raw.audio),
        resolution=resolution,
    )
