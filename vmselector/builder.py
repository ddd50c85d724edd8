"""Build orchestration: hand a VMConfig to Nix and locate the VM runner."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
from collections import deque
from pathlib import Path
from typing import IO, List, Optional, Protocol

from vmselector.constants import BUILD_OUTPUT_TAIL_LINES, DEFAULT_PORT_FORWARDS, NIX_BINARY, RESULT_LINK
from vmselector.exceptions import BuildFailed
from vmselector.models import BuildResult, VMConfig
from vmselector.utils import log


class BuildBackend(Protocol):
    name: str

    def build(self, cfg: VMConfig) -> BuildResult:
        ...


def nix_string(value: str) -> str:
    """Quote *value* as a Nix double-quoted string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def nix_bool(value: bool) -> str:
    return "true" if value else "false"


def nix_list(items) -> str:
    if not items:
        return "[ ]"
    return "[ " + " ".join(nix_string(item) for item in items) + " ]"


def nix_port_forwards(forwards) -> str:
    if not forwards:
        return "[ ]"
    return "[ " + " ".join(f"{{ host = {host}; guest = {guest}; }}" for host, guest in forwards) + " ]"


def render_nix_expression(cfg: VMConfig, flake_ref: str) -> str:
    """Render the ``nix build --expr`` argument for *cfg*.

    The flake's ``lib.<system>.makeCustomVM`` is curried and takes, in order:
    RAM (GB), cores, disk (GB), overlay, RW shares, RO shares, name, audio,
    desktop, port forwards and resolution (string or ``null``).
    """
    resolution = nix_string(cfg.resolution) if cfg.resolution else "null"
    args = [
        str(cfg.ram_gb),
        str(cfg.cpu_cores),
        str(cfg.storage_gb),
        nix_bool(cfg.overlay),
        nix_list(cfg.rw_shares),
        nix_list(cfg.ro_shares),
        nix_string(cfg.name),
        nix_bool(cfg.audio),
        nix_bool(cfg.desktop),
        nix_port_forwards(DEFAULT_PORT_FORWARDS),
        resolution,
    ]
    lines = [
        "let",
        f"  flake = builtins.getFlake {nix_string(flake_ref)};",
        "in",
        "  flake.lib.${builtins.currentSystem}.makeCustomVM " + " ".join(args),
    ]
    return "\n".join(lines) + "\n"


class NixBuildBackend:
    """Runs ``nix build`` in the work directory and streams its output."""

    name = "nix"

    def __init__(
        self,
        flake_ref: str,
        workdir: Path,
        nix_binary: str = NIX_BINARY,
        output: Optional[IO[str]] = None,
    ) -> None:
        self.flake_ref = flake_ref
        self.workdir = workdir
        self.nix_binary = nix_binary
        self._output = output

    def command(self, cfg: VMConfig) -> List[str]:
        return [self.nix_binary, "build", "--impure", "--expr", render_nix_expression(cfg, self.flake_ref)]

    def build(self, cfg: VMConfig) -> BuildResult:
        cmd = self.command(cfg)
        log("DEBUG", f"Running: {' '.join(cmd[:4])} <expr> (cwd={self.workdir})")
        returncode, tail = self._stream(cmd)
        if returncode != 0:
            raise BuildFailed(
                f"Nix build failed with exit code {returncode} (flake: {self.flake_ref}); "
                "see the build output above",
                returncode=returncode,
                output_tail=tail,
            )
        return self._locate_artifact(cfg)

    def _stream(self, cmd: List[str]):
        output = self._output or sys.stdout
        tail: deque = deque(maxlen=BUILD_OUTPUT_TAIL_LINES)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(self.workdir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise BuildFailed(f"Could not start '{self.nix_binary}': {exc}")

        def _terminate_build(signum, frame):
            proc.terminate()

        prev_sigterm = signal.signal(signal.SIGTERM, _terminate_build)
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                output.write(line)
                output.flush()
                tail.append(line.rstrip("\n"))
            returncode = proc.wait()
        except KeyboardInterrupt:
            proc.send_signal(signal.SIGINT)
            proc.wait()
            raise BuildFailed("Build interrupted; no startup script was written", returncode=proc.returncode)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            signal.signal(signal.SIGTERM, prev_sigterm)
        return returncode, "\n".join(tail)

    def _locate_artifact(self, cfg: VMConfig) -> BuildResult:
        result_link = self.workdir / RESULT_LINK
        if not result_link.exists():
            raise BuildFailed(f"Nix build succeeded but '{RESULT_LINK}' was not created in {self.workdir}")
        bin_dir = result_link / "bin"
        artifact = bin_dir / cfg.artifact_name
        if not artifact.is_file():
            try:
                available = ", ".join(sorted(p.name for p in bin_dir.iterdir())) or "<empty>"
            except OSError:
                available = "<not accessible>"
            raise BuildFailed(f"VM binary not found at expected location: {artifact} (found: {available})")
        if not os.access(artifact, os.X_OK):
            raise BuildFailed(f"VM binary is not executable: {artifact}")
        workdir = self.workdir.resolve()
        return BuildResult(
            artifact_name=cfg.artifact_name,
            artifact_path=workdir / RESULT_LINK / "bin" / cfg.artifact_name,
            workdir=workdir,
        )


class BuildOrchestrator:
    """Invoke a backend once for a validated config; never retries."""

    def __init__(self, backend: BuildBackend) -> None:
        self.backend = backend

    def build(self, cfg: VMConfig) -> BuildResult:
        log("INFO", f"Building VM '{cfg.name}' with {self.backend.name}: {cfg.summary()}")
        result = self.backend.build(cfg)
        if result.artifact_name != cfg.artifact_name:
            raise BuildFailed(
                f"Backend produced '{result.artifact_name}' but '{cfg.artifact_name}' was expected"
            )
        log("SUCCESS", f"VM built successfully: {result.artifact_path}")
        return result
