"""Custom exceptions for nix-vm-selector."""

from __future__ import annotations

from typing import Iterable, List, Optional


class SelectorError(RuntimeError):
    """Raised on unrecoverable configuration, build or generation errors."""


class ValidationError(SelectorError):
    """A single rejected input field."""

    kind = "ValidationError"

    def __init__(self, field: str, value: object, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class NotPositiveInteger(ValidationError):
    kind = "NotPositiveInteger"


class ExceedsSaneLimit(ValidationError):
    kind = "ExceedsSaneLimit"


class InvalidNameCharacters(ValidationError):
    kind = "InvalidNameCharacters"


class ShareNotAccessible(ValidationError):
    kind = "ShareNotAccessible"


class MissingRequiredField(ValidationError):
    kind = "MissingRequiredField"


class UnsafeSharePath(ValidationError):
    kind = "UnsafeSharePath"


class ShareBlocked(ValidationError):
    kind = "ShareBlocked"


class SensitiveShareRefused(ValidationError):
    kind = "SensitiveShareRefused"


class InvalidResolution(ValidationError):
    kind = "InvalidResolution"


class ValidationErrors(SelectorError):
    """Every validation failure collected from one input record."""

    def __init__(self, errors: Iterable[ValidationError]) -> None:
        self.errors: List[ValidationError] = list(errors)
        super().__init__("\n".join(str(err) for err in self.errors))


class InteractiveUnavailable(SelectorError):
    """No configuration flags were given and the menu cannot be shown."""


class PreflightError(SelectorError):
    """Host cannot accommodate the request (checked before building)."""


class BuildFailed(SelectorError):
    """The build backend exited non-zero or produced no usable artifact."""

    def __init__(self, message: str, returncode: Optional[int] = None, output_tail: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output_tail = output_tail


class GenerationError(SelectorError):
    """The startup script could not be rendered or written."""
