"""
Dependency graph — build prerequisites in a fixed order before the target.

The order is static and given by the profile; construction only checks
that every prerequisite a node requires appears earlier.  Each built
node installs into ``<scratch>/<name>/install``; its ``include`` and
``lib`` directories become search paths for the nodes that require it
and for the target.  No auto-discovery: every path is constructed here.

The first failing node aborts the whole run (``BuildError`` propagates).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from socat_build.core.errors import ConfigError
from socat_build.core.executor import BuildExecutor, BuildRecipe, BuildUnit
from socat_build.core.integrity import VerifiedArchive
from socat_build.core.resolver import PackageRelease

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyNode:
    """A prerequisite unit and the feature marker it unlocks in the target."""

    name: str
    recipe: BuildRecipe
    requires: Tuple[str, ...] = ()
    feature: Optional[str] = None


@dataclass(frozen=True)
class BuiltDependency:
    """Install layout of a finished prerequisite."""

    name: str
    release: PackageRelease
    install_dir: Path
    feature: Optional[str] = None

    @property
    def include_dir(self) -> Path:
        return self.install_dir / "include"

    @property
    def lib_dir(self) -> Path:
        return self.install_dir / "lib"


def unit_dir(scratch_dir: Path, name: str) -> Path:
    return scratch_dir / name


def install_dir_for(scratch_dir: Path, name: str) -> Path:
    return unit_dir(scratch_dir, name) / "install"


def search_paths(built: Iterable[BuiltDependency]) -> Tuple[List[Path], List[Path]]:
    """Include and library directories of *built*, in build order."""
    built = list(built)
    return [b.include_dir for b in built], [b.lib_dir for b in built]


class DependencyBuildGraph:
    """A fixed topological order of prerequisite nodes."""

    def __init__(self, nodes: Sequence[DependencyNode] = ()):
        seen: List[str] = []
        for node in nodes:
            if node.name in seen:
                raise ConfigError(f"Dependency {node.name} listed twice")
            missing = [r for r in node.requires if r not in seen]
            if missing:
                raise ConfigError(
                    f"Dependency {node.name} requires {', '.join(missing)}, "
                    f"which must be built before it"
                )
            seen.append(node.name)
        self.nodes: Tuple[DependencyNode, ...] = tuple(nodes)

    @property
    def order(self) -> List[str]:
        return [n.name for n in self.nodes]

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def build_all(
        self,
        archives: Mapping[str, VerifiedArchive],
        executor: BuildExecutor,
        scratch_dir: Path,
    ) -> List[BuiltDependency]:
        """
        Unpack and build every node in order.

        *archives* maps node name to its verified archive.  Returns the
        built dependencies in build order.
        """
        built: dict = {}
        for node in self.nodes:
            archive = archives.get(node.name)
            if archive is None:
                raise ConfigError(f"No verified archive for dependency {node.name}")

            base = unit_dir(scratch_dir, node.name)
            source_dir = executor.unpack(archive, base / "src")
            includes, libs = search_paths(built[r] for r in node.requires)
            unit = BuildUnit(
                release=archive.release,
                source_dir=source_dir,
                install_dir=install_dir_for(scratch_dir, node.name),
                include_paths=includes,
                lib_paths=libs,
            )

            logger.info(
                "Building dependency %s %s (%d/%d)",
                node.name,
                archive.release.version,
                len(built) + 1,
                len(self.nodes),
            )
            executor.build(unit, node.recipe)
            built[node.name] = BuiltDependency(
                name=node.name,
                release=archive.release,
                install_dir=unit.install_dir,
                feature=node.feature,
            )

        return [built[n.name] for n in self.nodes]
