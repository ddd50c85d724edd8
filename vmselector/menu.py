"""Interactive menu producing the same RawInput as the command-line flags."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional, Sequence

from vmselector.constants import DEFAULT_VM_NAME, FIELD_LABELS
from vmselector.exceptions import ValidationError
from vmselector.models import Limits, Preset, RawInput
from vmselector.validator import validate_name, validate_positive_int, validate_resolution, validate_share

RESOLUTION_OPTIONS = ("1280x720 (HD)", "1920x1080 (Full HD)", "2560x1440 (2K)", "3840x2160 (4K)")


class Cancelled(Exception):
    """The operator backed out of the menu."""


class InteractiveMenu:
    def __init__(
        self,
        presets: Dict[str, Preset],
        limits: Limits,
        input_fn: Callable[[str], str] = input,
        output: Optional[IO[str]] = None,
    ) -> None:
        self.presets = presets
        self.limits = limits
        self._input = input_fn
        self._output = output
        self._sensitive_confirmed = False

    def _print(self, message: str = "") -> None:
        print(message, file=self._output or sys.stdout, flush=True)

    def _ask(self, prompt: str) -> str:
        try:
            return self._input(prompt).strip()
        except EOFError:
            raise Cancelled()

    def choose(self, prompt: str, options: Sequence[str]) -> int:
        """Return the index of the picked option; empty input cancels."""
        self._print(prompt)
        for idx, option in enumerate(options, start=1):
            self._print(f"  {idx}) {option}")
        while True:
            answer = self._ask(f"Select [1-{len(options)}]: ")
            if not answer:
                raise Cancelled()
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return int(answer) - 1
            self._print(f"Invalid choice '{answer}'")

    def ask_size(self, field: str) -> int:
        label = FIELD_LABELS[field]
        unit = "cores" if field == "cpu_cores" else "GB"
        while True:
            answer = self._ask(f"{label} ({unit}): ")
            if not answer:
                raise Cancelled()
            try:
                return validate_positive_int(field, answer, self.limits.for_field(field))
            except ValidationError as exc:
                self._print(f"Error: {exc}")

    def confirm(self, prompt: str) -> bool:
        return self._ask(f"{prompt} [y/N]: ").lower() in ("y", "yes")

    def confirm_sensitive(self, path: str, mode: str) -> bool:
        self._print(f"SECURITY WARNING: '{path}' contains sensitive system or user data.")
        if mode == "read-write":
            self._print("Sharing it read-write lets the VM modify or delete these files.")
        else:
            self._print("Sharing it read-only lets the VM read secrets stored there.")
        accepted = self._ask("Are you absolutely sure you want to share this directory? (yes/NO): ") == "yes"
        if accepted:
            self._sensitive_confirmed = True
        else:
            self._print("Cancelled. Directory not shared.")
        return accepted

    def confirm_overwrite(self, script: Path) -> bool:
        return self.confirm(f"Startup script '{script}' already exists. Overwrite it?")

    def _collect_shares(self, mode: str) -> List[str]:
        shares: List[str] = []
        while True:
            path = self._ask(f"Host directory to share {mode} (Enter to finish): ")
            if not path:
                return shares
            try:
                resolved = validate_share(path, mode, confirm=self.confirm_sensitive)
            except ValidationError as exc:
                self._print(f"Skipping: {exc}")
                continue
            shares.append(resolved)
            self._print(f"Added: {resolved} ({mode})")

    def collect(self) -> RawInput:
        raw = RawInput()

        presets = list(self.presets.values())
        choice = self.choose("VM size:", [preset.label() for preset in presets] + ["custom"])
        if choice < len(presets):
            preset = presets[choice]
            raw.ram, raw.cpu, raw.storage = preset.ram_gb, preset.cpu_cores, preset.storage_gb
        else:
            raw.ram = self.ask_size("ram_gb")
            raw.cpu = self.ask_size("cpu_cores")
            raw.storage = self.ask_size("storage_gb")

        if self.choose("VM name:", [f"Use default name ({DEFAULT_VM_NAME})", "Specify custom name"]) == 1:
            while True:
                answer = self._ask("VM name (letters, numbers, hyphens, underscores): ")
                if not answer:
                    self._print("VM name cannot be empty.")
                    continue
                try:
                    raw.name = validate_name(answer)
                    break
                except ValidationError as exc:
                    self._print(f"Error: {exc}")

        display = self.choose("Display mode:", ["Terminal (headless)", "Desktop (graphical environment)"])
        if display == 1:
            raw.desktop = True
            options = ["Auto (default)", *RESOLUTION_OPTIONS, "Custom resolution"]
            pick = self.choose("Display resolution:", options)
            if pick == len(options) - 1:
                while True:
                    answer = self._ask("Resolution (WIDTHxHEIGHT, Enter for auto): ")
                    try:
                        raw.resolution = validate_resolution(answer)
                        break
                    except ValidationError as exc:
                        self._print(f"Error: {exc}")
            elif pick > 0:
                raw.resolution = options[pick].split(" ", 1)[0]

        raw.audio = self.choose("Audio:", ["No audio passthrough", "Enable audio passthrough"]) == 1
        raw.overlay = (
            self.choose(
                "Filesystem mode:",
                ["Persistent (changes survive reboots)", "Overlay (clean state each boot)"],
            )
            == 1
        )

        if self.choose("Shared folders:", ["No shared folders", "Add shared folders"]) == 1:
            raw.rw_shares = self._collect_shares("read-write")
            raw.ro_shares = self._collect_shares("read-only")
        raw.allow_sensitive = self._sensitive_confirmed
        return raw
