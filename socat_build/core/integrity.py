"""
Integrity — download release archives and enforce checksum agreement.

Fail-closed rules:
  1. Pin vs published: when the caller pinned a checksum and upstream
     publishes one, they must agree before any download happens.
  2. Expected vs downloaded: the SHA-256 of the downloaded bytes must
     equal the pin (or, without a pin, the published checksum).  The
     bytes land in a ``.part`` file that is only renamed into place
     after the check passes and is deleted otherwise.
  3. Nothing to compare against: the archive is kept but marked
     unverified and an ``UNVERIFIED`` warning is logged.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from socat_build.core.errors import IntegrityError, NetworkError
from socat_build.core.resolver import PackageRelease

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


@dataclass(frozen=True)
class VerifiedArchive:
    """A downloaded archive that passed (or was explicitly exempted from) verification."""

    release: PackageRelease
    path: Path
    sha256: str
    verified: bool


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _normalize(checksum: Optional[str]) -> Optional[str]:
    if checksum is None:
        return None
    checksum = checksum.strip().lower()
    return checksum or None


def check_pin(release: PackageRelease, checksum_pin: Optional[str]) -> None:
    """
    Compare a caller-supplied checksum pin against the published one.

    Runs before download.  No-op when either side is missing.
    """
    pin = _normalize(checksum_pin)
    published = _normalize(release.checksum)
    if pin is None or published is None:
        return
    if pin != published:
        raise IntegrityError(
            f"Checksum pin for {release.archive_name} does not match the "
            f"published checksum: pinned {pin}, published {published}"
        )
    logger.debug("Checksum pin for %s matches published value", release.archive_name)


def download_archive(
    client: httpx.Client,
    release: PackageRelease,
    dest_dir: Path,
    checksum_pin: Optional[str] = None,
) -> VerifiedArchive:
    """
    Download *release* into *dest_dir* and verify it.

    Raises
    ------
    IntegrityError
        Pin/published disagreement (before download) or downloaded bytes
        not matching the expected checksum.
    NetworkError
        Download failed.
    """
    check_pin(release, checksum_pin)
    expected = _normalize(checksum_pin) or _normalize(release.checksum)

    dest_dir.mkdir(parents=True, exist_ok=True)
    final_path = dest_dir / release.archive_name
    part_path = dest_dir / (release.archive_name + ".part")

    logger.info("Downloading %s", release.url)
    h = hashlib.sha256()
    try:
        with client.stream("GET", release.url) as response:
            if response.is_error:
                raise NetworkError(
                    f"HTTP {response.status_code} downloading {release.url}"
                )
            with open(part_path, "wb") as f:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    h.update(chunk)
                    f.write(chunk)
    except httpx.HTTPError as e:
        part_path.unlink(missing_ok=True)
        raise NetworkError(f"Failed to download {release.url}: {e}") from e
    except NetworkError:
        part_path.unlink(missing_ok=True)
        raise

    actual = h.hexdigest()

    if expected is not None and actual != expected:
        part_path.unlink(missing_ok=True)
        raise IntegrityError(
            f"Checksum mismatch for {release.archive_name}: "
            f"expected {expected}, downloaded {actual}"
        )

    part_path.replace(final_path)

    if expected is None:
        logger.warning(
            "UNVERIFIED: no checksum published or pinned for %s; "
            "downloaded sha256 %s",
            release.archive_name,
            actual,
        )
        return VerifiedArchive(release=release, path=final_path, sha256=actual, verified=False)

    logger.info("Verified %s (sha256 %s)", release.archive_name, actual)
    return VerifiedArchive(release=release, path=final_path, sha256=actual, verified=True)
