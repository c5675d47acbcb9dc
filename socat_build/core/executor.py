"""
Build executor — unpack, configure, compile and install one source unit.

Handles:
- Safe extraction of a verified archive into the scratch directory
- CPPFLAGS / LDFLAGS assembly from explicit include/lib search paths
- The static-link directive (tri-state: unset ⇒ ``-static``)
- Per-phase stdout/stderr logs under ``<unit>/logs``
- Stripping the final binary

Any non-zero exit raises ``BuildError`` with the command and the tail of
the tool output.  Compilation has no timeout.
"""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tarfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from socat_build.core.errors import BuildError
from socat_build.core.integrity import VerifiedArchive
from socat_build.core.resolver import PackageRelease

logger = logging.getLogger(__name__)

DEFAULT_LINK_DIRECTIVE = "-static"
OUTPUT_TAIL_LINES = 40


@dataclass(frozen=True)
class BuildRecipe:
    """Commands for one unit.  ``{prefix}`` and ``{jobs}`` are substituted."""

    configure: Tuple[str, ...] = ("./configure", "--prefix={prefix}")
    build: Tuple[str, ...] = ("make", "-j{jobs}")
    install: Tuple[str, ...] = ("make", "install")
    apply_link_directive: bool = False
    env: Tuple[Tuple[str, str], ...] = ()


@dataclass
class BuildUnit:
    """One source tree about to be built."""

    release: PackageRelease
    source_dir: Path
    install_dir: Path
    configure_flags: List[str] = field(default_factory=list)
    include_paths: List[Path] = field(default_factory=list)
    lib_paths: List[Path] = field(default_factory=list)

    @property
    def logs_dir(self) -> Path:
        """``<unit>/logs`` beside ``<unit>/src``."""
        return self.source_dir.parent.parent / "logs"


def resolve_link_directive(directive: Optional[str]) -> str:
    """Unset ⇒ fully static; empty ⇒ toolchain default; otherwise verbatim."""
    if directive is None:
        return DEFAULT_LINK_DIRECTIVE
    return directive.strip()


def _tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    return "\n".join(text.rstrip().splitlines()[-lines:])


class BuildExecutor:
    """Runs the build phases of single units, one at a time."""

    def __init__(
        self,
        jobs: Optional[int] = None,
        link_directive: Optional[str] = None,
        base_env: Optional[Dict[str, str]] = None,
    ):
        self.jobs = jobs or os.cpu_count() or 4
        self.link_directive = resolve_link_directive(link_directive)
        self.base_env = dict(base_env if base_env is not None else os.environ)

    # -----------------------------------------------------------------
    # Unpack
    # -----------------------------------------------------------------

    def unpack(self, archive: VerifiedArchive, dest_root: Path) -> Path:
        """
        Extract *archive* under *dest_root* and return the source directory
        ``<dest_root>/<name>-<version>``.
        """
        dest_root.mkdir(parents=True, exist_ok=True)
        root = dest_root.resolve()
        try:
            with tarfile.open(archive.path) as tar:
                for member in tar.getmembers():
                    target = (root / member.name).resolve()
                    if target != root and root not in target.parents:
                        raise BuildError(
                            f"{archive.path.name}: member {member.name!r} escapes the extraction directory"
                        )
                    if member.issym() or member.islnk():
                        link_target = (target.parent / member.linkname).resolve()
                        if link_target != root and root not in link_target.parents:
                            raise BuildError(
                                f"{archive.path.name}: link {member.name!r} points outside the extraction directory"
                            )
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(root, filter="data")
                else:
                    tar.extractall(root)
        except tarfile.TarError as e:
            raise BuildError(f"Failed to unpack {archive.path.name}: {e}") from e

        release = archive.release
        source_dir = root / f"{release.name}-{release.version}"
        if not source_dir.is_dir():
            raise BuildError(
                f"{archive.path.name} did not unpack to {source_dir.name}/"
            )
        logger.info("Unpacked %s into %s", archive.path.name, source_dir)
        return source_dir

    # -----------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------

    def unit_env(self, unit: BuildUnit, recipe: BuildRecipe) -> Dict[str, str]:
        """Environment for the unit's tools: search paths and link directive."""
        env = dict(self.base_env)
        cppflags = [f"-I{p}" for p in unit.include_paths]
        ldflags = []
        if recipe.apply_link_directive and self.link_directive:
            ldflags.append(self.link_directive)
        ldflags += [f"-L{p}" for p in unit.lib_paths]

        if cppflags:
            env["CPPFLAGS"] = " ".join(filter(None, [env.get("CPPFLAGS", ""), *cppflags]))
        if ldflags:
            env["LDFLAGS"] = " ".join(filter(None, [env.get("LDFLAGS", ""), *ldflags]))
        env.update(dict(recipe.env))
        return env

    def _expand(self, args: Sequence[str], unit: BuildUnit) -> List[str]:
        return [a.format(prefix=unit.install_dir, jobs=self.jobs) for a in args]

    def run_phase(
        self,
        phase: str,
        cmd: List[str],
        unit: BuildUnit,
        env: Dict[str, str],
    ) -> None:
        """Run one phase to completion; raise ``BuildError`` on non-zero exit."""
        unit.logs_dir.mkdir(parents=True, exist_ok=True)
        cmd_str = " ".join(cmd)
        logger.info("[%s] %s: %s", unit.release.name, phase, cmd_str)

        t0 = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=str(unit.source_dir),
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise BuildError(
                f"{unit.release.name} {phase} could not start: {e}",
                command=cmd_str,
            ) from e
        duration = time.monotonic() - t0

        (unit.logs_dir / f"{phase}.stdout").write_text(result.stdout)
        (unit.logs_dir / f"{phase}.stderr").write_text(result.stderr)

        if result.returncode != 0:
            raise BuildError(
                f"{unit.release.name} {phase} failed with exit code {result.returncode}: {cmd_str}",
                command=cmd_str,
                output=_tail(result.stdout + "\n" + result.stderr),
            )
        logger.debug("[%s] %s finished in %.1fs", unit.release.name, phase, duration)

    def build(self, unit: BuildUnit, recipe: BuildRecipe) -> Path:
        """
        Configure, compile and (when the recipe has one) install *unit*.

        Returns the install directory.
        """
        env = self.unit_env(unit, recipe)
        configure_cmd = self._expand(recipe.configure, unit) + list(unit.configure_flags)

        self.run_phase("configure", configure_cmd, unit, env)
        self.run_phase("build", self._expand(recipe.build, unit), unit, env)
        if recipe.install:
            unit.install_dir.mkdir(parents=True, exist_ok=True)
            self.run_phase("install", self._expand(recipe.install, unit), unit, env)
        return unit.install_dir

    def strip(self, binary_path: Path, strip_tool: str = "strip") -> None:
        """Strip all symbols from *binary_path* in place."""
        if shutil.which(strip_tool) is None:
            raise BuildError(f"{strip_tool} not found in PATH", command=strip_tool)
        cmd = [strip_tool, "--strip-all", str(binary_path)]
        result = subprocess.run(cmd, capture_output=True, text=True, errors="replace")
        if result.returncode != 0:
            raise BuildError(
                f"strip failed with exit code {result.returncode}",
                command=" ".join(cmd),
                output=_tail(result.stdout + "\n" + result.stderr),
            )
        logger.info("Stripped %s", binary_path)
