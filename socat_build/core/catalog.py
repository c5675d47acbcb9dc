"""
Release catalogs — discover published archives of one upstream package.

Resolution logic only sees the ``ReleaseCatalog`` interface:

  - ``archives()``          archive filenames published upstream
  - ``checksum_for(name)``  published SHA-256 for one archive, or None
  - ``archive_url(name)``   download URL for one archive

Two implementations:

  HtmlListingCatalog       scrapes an HTTP directory listing; checksums
                           come from an optional per-archive sidecar file
                           (``<archive>.sha256``).
  ChecksumManifestCatalog  reads a ``sha256sum``-style manifest that lists
                           archives and hashes together.

All network access goes through one ``httpx.Client`` with a short fixed
timeout.  Any transport failure or HTTP error status becomes
``NetworkError``; nothing is retried.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from urllib.parse import urljoin

import httpx

from socat_build.core.errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_HREF_RE = re.compile(r"""href\s*=\s*["']([^"'?#]+)["']""", re.IGNORECASE)
_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.Client:
    """Create the HTTP client shared by catalogs and the downloader."""
    return httpx.Client(timeout=timeout, follow_redirects=True)


def fetch_text(
    client: httpx.Client,
    url: str,
    allow_missing: bool = False,
) -> Optional[str]:
    """
    GET *url* and return the body as text.

    With ``allow_missing`` a 404 returns None instead of raising.
    """
    logger.debug("GET %s", url)
    try:
        response = client.get(url)
    except httpx.TimeoutException as e:
        raise NetworkError(f"Timed out fetching {url}: {e}") from e
    except httpx.HTTPError as e:
        raise NetworkError(f"Failed to fetch {url}: {e}") from e

    if allow_missing and response.status_code == 404:
        logger.debug("Not published: %s", url)
        return None
    if response.is_error:
        raise NetworkError(f"HTTP {response.status_code} fetching {url}")
    return response.text


def parse_checksum_text(text: str, archive_name: str) -> Optional[str]:
    """
    Extract the SHA-256 for *archive_name* from sidecar or manifest text.

    Accepts both a bare hash (sidecar) and ``<hash>  [*]<filename>``
    lines (sha256sum manifest).  Returns the lowercase hex digest.
    """
    for line in text.splitlines():
        parts = line.split()
        if not parts or not _SHA256_RE.match(parts[0]):
            continue
        if len(parts) == 1:
            return parts[0].lower()
        filename = parts[1].lstrip("*").rsplit("/", 1)[-1]
        if filename == archive_name:
            return parts[0].lower()
    return None


class ReleaseCatalog(ABC):
    """Published releases of one upstream package."""

    @abstractmethod
    def archives(self) -> List[str]:
        """Return the archive filenames published upstream."""

    @abstractmethod
    def checksum_for(self, archive_name: str) -> Optional[str]:
        """Return the published SHA-256 of *archive_name*, or None."""

    @abstractmethod
    def archive_url(self, archive_name: str) -> str:
        """Return the download URL of *archive_name*."""


class HtmlListingCatalog(ReleaseCatalog):
    """Catalog backed by an HTTP directory listing page."""

    def __init__(
        self,
        listing_url: str,
        client: httpx.Client,
        checksum_suffix: Optional[str] = None,
    ):
        if not listing_url.endswith("/"):
            listing_url += "/"
        self.listing_url = listing_url
        self.client = client
        self.checksum_suffix = checksum_suffix
        self._urls: Optional[Dict[str, str]] = None

    def archives(self) -> List[str]:
        if self._urls is None:
            text = fetch_text(self.client, self.listing_url) or ""
            urls: Dict[str, str] = {}
            for href in _HREF_RE.findall(text):
                name = href.rstrip("/").rsplit("/", 1)[-1]
                if name and name not in urls:
                    # hrefs may be absolute and point at another host
                    urls[name] = urljoin(self.listing_url, href)
            logger.debug("%d entries in %s", len(urls), self.listing_url)
            self._urls = urls
        return list(self._urls)

    def checksum_for(self, archive_name: str) -> Optional[str]:
        if not self.checksum_suffix:
            return None
        text = fetch_text(
            self.client,
            self.archive_url(archive_name) + self.checksum_suffix,
            allow_missing=True,
        )
        if text is None:
            return None
        return parse_checksum_text(text, archive_name)

    def archive_url(self, archive_name: str) -> str:
        """URL the listing links for *archive_name*, else relative to the listing."""
        linked = (self._urls or {}).get(archive_name)
        return linked or urljoin(self.listing_url, archive_name)


class ChecksumManifestCatalog(ReleaseCatalog):
    """Catalog backed by a single sha256sum-style manifest."""

    def __init__(
        self,
        manifest_url: str,
        client: httpx.Client,
        download_base_url: Optional[str] = None,
    ):
        self.manifest_url = manifest_url
        self.client = client
        base = download_base_url or manifest_url.rsplit("/", 1)[0]
        self.download_base_url = base if base.endswith("/") else base + "/"
        self._hashes: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._hashes is None:
            text = fetch_text(self.client, self.manifest_url) or ""
            hashes: Dict[str, str] = {}
            for line in text.splitlines():
                parts = line.split()
                if len(parts) < 2 or not _SHA256_RE.match(parts[0]):
                    continue
                name = parts[1].lstrip("*").rsplit("/", 1)[-1]
                hashes.setdefault(name, parts[0].lower())
            logger.debug("%d entries in %s", len(hashes), self.manifest_url)
            self._hashes = hashes
        return self._hashes

    def archives(self) -> List[str]:
        return list(self._load())

    def checksum_for(self, archive_name: str) -> Optional[str]:
        return self._load().get(archive_name)

    def archive_url(self, archive_name: str) -> str:
        return urljoin(self.download_base_url, archive_name)
