"""
Resolver — pick the exact or latest release of a package from a catalog.

Exact pin:  the catalog must publish ``<name>-<version><ext>`` verbatim.
Latest:     every entry matching ``<name>-<pattern><ext>`` is parsed into a
            structured ``Version``; the maximum wins.

The published checksum (when the catalog has one) travels with the
resolved release so the integrity stage can check it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from socat_build.core.catalog import ReleaseCatalog
from socat_build.core.errors import NotFound
from socat_build.core.version import Version

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".tar.gz"
DEFAULT_VERSION_PATTERN = r"\d+(?:\.\d+){1,3}[a-z]?"


@dataclass(frozen=True)
class PackageRelease:
    """One resolved upstream release.  Immutable once resolved."""

    name: str
    version: str
    archive_name: str
    url: str
    checksum: Optional[str] = None


def archive_name_for(name: str, version: str, extension: str = DEFAULT_EXTENSION) -> str:
    return f"{name}-{version}{extension}"


def list_versions(
    archives: List[str],
    name: str,
    extension: str = DEFAULT_EXTENSION,
    version_pattern: str = DEFAULT_VERSION_PATTERN,
) -> List[Tuple[Version, str]]:
    """
    Return ``(Version, archive_name)`` for every archive of *name*,
    highest version first.  Entries that do not match are ignored.
    """
    rx = re.compile(
        rf"^{re.escape(name)}-(?P<version>{version_pattern}){re.escape(extension)}$"
    )
    found: List[Tuple[Version, str]] = []
    for archive in archives:
        m = rx.match(archive)
        if m is None:
            continue
        try:
            found.append((Version.parse(m.group("version")), archive))
        except ValueError:
            logger.debug("Ignoring unparseable version in %s", archive)
    found.sort(key=lambda pair: pair[0], reverse=True)
    return found


def resolve_release(
    catalog: ReleaseCatalog,
    name: str,
    version: Optional[str] = None,
    extension: str = DEFAULT_EXTENSION,
    version_pattern: str = DEFAULT_VERSION_PATTERN,
) -> PackageRelease:
    """
    Resolve *name* to a ``PackageRelease``.

    Raises
    ------
    NotFound
        The pinned archive is not published, or no entry matches the
        version pattern.
    NetworkError
        The catalog could not be fetched.
    """
    archives = catalog.archives()

    if version:
        archive = archive_name_for(name, version, extension)
        if archive not in archives:
            raise NotFound(f"{archive} is not published upstream")
        resolved_version = version
    else:
        candidates = list_versions(archives, name, extension, version_pattern)
        if not candidates:
            raise NotFound(
                f"No release of {name} matching {version_pattern!r} found "
                f"among {len(archives)} upstream entries"
            )
        latest, archive = candidates[0]
        resolved_version = str(latest)
        logger.debug(
            "%s candidates: %s",
            name,
            ", ".join(str(v) for v, _ in candidates[:5]),
        )

    checksum = catalog.checksum_for(archive)
    release = PackageRelease(
        name=name,
        version=resolved_version,
        archive_name=archive,
        url=catalog.archive_url(archive),
        checksum=checksum,
    )
    logger.info(
        "Resolved %s %s (%s, checksum %s)",
        name,
        release.version,
        "pinned" if version else "latest",
        "published" if checksum else "not published",
    )
    return release
