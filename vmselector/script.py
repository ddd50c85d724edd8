"""Startup script generation.

The script is rendered from a fixed Jinja2 template with every
configuration value substituted as a literal. Template residue is checked
on a second rendering with neutral placeholder values, so configuration
text that merely looks like template syntax (a share called
``notes{{2024}}``) is never mistaken for it. The launch line must be a
literal path that does not depend on shell variables.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

try:
    from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError
except ImportError as exc:  # pragma: no cover
    raise SystemExit("Jinja2 is required but not installed") from exc

from vmselector.constants import CONTROL_CHARS_RE, TEMPLATE_NAME
from vmselector.exceptions import GenerationError
from vmselector.models import BuildResult, ShareMapping, VMConfig
from vmselector.utils import log

_RESIDUAL_MARKERS = ("{{", "{%", "{#")
_PLACEHOLDER = "_"


def dq_escape(value: object) -> str:
    """Escape a value for use inside a double-quoted shell word."""
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("`", "\\`")
    )


def shell_bool(value: bool) -> str:
    return "true" if value else "false"


def one_line(value: object) -> str:
    """Collapse control characters so a value stays inside a ``#`` comment."""
    return CONTROL_CHARS_RE.sub("?", str(value))


def _has_unescaped_dollar(line: str) -> bool:
    escaped = False
    for char in line:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "$":
            return True
    return False


def check_template_residue(text: str) -> None:
    for marker in _RESIDUAL_MARKERS:
        if marker in text:
            raise GenerationError(f"Rendered startup script still contains template syntax '{marker}'")


def check_launch_line(text: str, artifact_name: str) -> None:
    """Require exactly one literal ``exec`` of the expected artifact."""
    exec_lines = [line for line in text.splitlines() if line.startswith("exec ")]
    if len(exec_lines) != 1:
        raise GenerationError(f"Rendered startup script must have exactly one exec line (found {len(exec_lines)})")
    launch = exec_lines[0]
    if _has_unescaped_dollar(launch):
        raise GenerationError(f"Launch line depends on a shell variable: {launch}")
    if artifact_name not in launch:
        raise GenerationError(f"Launch line does not reference '{artifact_name}': {launch}")


def _neutral(value):
    if isinstance(value, ShareMapping):
        return value._replace(host=_PLACEHOLDER, guest=_PLACEHOLDER)
    if isinstance(value, str):
        return _PLACEHOLDER
    if isinstance(value, list):
        return [_neutral(item) for item in value]
    return value


class StartupScriptGenerator:
    def __init__(self, env: Optional[Environment] = None) -> None:
        self.env = env or Environment(
            loader=PackageLoader("vmselector", "templates"),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self.env.filters["dq"] = dq_escape
        self.env.filters["shbool"] = shell_bool
        self.env.filters["oneline"] = one_line

    def context(self, cfg: VMConfig, build: BuildResult) -> dict:
        mappings = list(cfg.share_mappings())
        return {
            "name": cfg.name,
            "summary": cfg.summary(),
            "ram_gb": cfg.ram_gb,
            "cpu_cores": cfg.cpu_cores,
            "storage_gb": cfg.storage_gb,
            "overlay": cfg.overlay,
            "desktop": cfg.desktop,
            "audio": cfg.audio,
            "display_status": cfg.display_status(),
            "audio_status": "enabled" if cfg.audio else "disabled",
            "overlay_status": "enabled" if cfg.overlay else "disabled",
            "rw_mappings": [m for m in mappings if not m.readonly],
            "ro_mappings": [m for m in mappings if m.readonly],
            "artifact_path": str(build.artifact_path),
            "workdir": str(build.workdir),
        }

    def render(self, cfg: VMConfig, build: BuildResult) -> str:
        if build.artifact_name != cfg.artifact_name:
            raise GenerationError(
                f"Artifact '{build.artifact_name}' does not belong to VM '{cfg.name}' "
                f"(expected '{cfg.artifact_name}')"
            )
        context = self.context(cfg, build)
        try:
            template = self.env.get_template(TEMPLATE_NAME)
            text = template.render(**context)
            skeleton = template.render(**{key: _neutral(value) for key, value in context.items()})
        except TemplateError as exc:
            raise GenerationError(f"Failed to render startup script: {exc}") from exc
        check_template_residue(skeleton)
        check_launch_line(text, cfg.artifact_name)
        return text

    def write(self, cfg: VMConfig, build: BuildResult, output_dir: Path) -> Path:
        """Render and atomically place ``start-<name>.sh`` in *output_dir*."""
        if output_dir.is_symlink():
            raise GenerationError(f"Output directory '{output_dir}' is a symbolic link; refusing to write there")
        if not output_dir.is_dir():
            raise GenerationError(f"Output directory does not exist: {output_dir}")
        if not os.access(output_dir, os.W_OK | os.X_OK):
            raise GenerationError(f"Output directory is not writable: {output_dir}")

        content = self.render(cfg, build)
        target = output_dir / cfg.script_name
        if target.exists():
            log("WARN", f"Overwriting existing startup script {target}")

        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                delete=False,
                dir=output_dir,
                prefix=f".{cfg.script_name}.",
                suffix=".tmp",
                encoding="utf-8",
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(content)
            os.chmod(tmp_path, 0o755)
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise GenerationError(f"Failed to write startup script {target}: {exc}") from exc
        log("SUCCESS", f"Created startup script: {target}")
        return target


def render_startup_script(cfg: VMConfig, build: BuildResult) -> str:
    return StartupScriptGenerator().render(cfg, build)


def write_startup_script(cfg: VMConfig, build: BuildResult, output_dir: Path) -> Path:
    return StartupScriptGenerator().write(cfg, build, output_dir)


def link_startup_script(script: Path, directory: Path) -> Optional[Path]:
    """Add a ``start-<name>.sh`` symlink in *directory* pointing at *script*.

    An existing entry is left alone. Failure only warns since the script
    itself was written.
    """
    link = directory / script.name
    if link.exists() or link.is_symlink():
        log("DEBUG", f"Not linking {link}: it already exists")
        return None
    try:
        link.symlink_to(script)
    except OSError as exc:
        log("WARN", f"Could not create convenience symlink {link}: {exc}")
        return None
    log("INFO", f"Created convenience symlink: {link}")
    return link
