"""
Tests for archive download and checksum enforcement.
"""
import logging

import httpx
import pytest

from socat_build.core.errors import IntegrityError, NetworkError
from socat_build.core.integrity import check_pin, download_archive, sha256_file
from socat_build.core.resolver import PackageRelease
from socat_build.tests.conftest import UPSTREAM, sha256_bytes

PAYLOAD = b"socat source bytes\n" * 100
URL = f"{UPSTREAM}/socat/socat-1.7.4.4.tar.gz"


def _release(checksum=None) -> PackageRelease:
    return PackageRelease(
        name="socat",
        version="1.7.4.4",
        archive_name="socat-1.7.4.4.tar.gz",
        url=URL,
        checksum=checksum,
    )


class TestCheckPin:

    def test_agreeing_pin(self):
        digest = sha256_bytes(PAYLOAD)
        check_pin(_release(digest), digest.upper())

    def test_disagreeing_pin(self):
        with pytest.raises(IntegrityError, match="does not match the published"):
            check_pin(_release("a" * 64), "b" * 64)

    def test_missing_side_is_noop(self):
        check_pin(_release(None), "b" * 64)
        check_pin(_release("a" * 64), None)
        check_pin(_release("a" * 64), "")


class TestDownloadArchive:

    def test_verified_against_published(self, upstream, tmp_path):
        upstream.add(URL, PAYLOAD)
        with upstream.client() as client:
            archive = download_archive(client, _release(sha256_bytes(PAYLOAD)), tmp_path)
        assert archive.verified
        assert archive.path == tmp_path / "socat-1.7.4.4.tar.gz"
        assert archive.path.read_bytes() == PAYLOAD
        assert archive.sha256 == sha256_file(archive.path)
        assert not (tmp_path / "socat-1.7.4.4.tar.gz.part").exists()

    def test_verified_against_pin_only(self, upstream, tmp_path):
        upstream.add(URL, PAYLOAD)
        with upstream.client() as client:
            archive = download_archive(
                client, _release(None), tmp_path, checksum_pin=sha256_bytes(PAYLOAD)
            )
        assert archive.verified

    def test_mismatch_deletes_partial(self, upstream, tmp_path):
        upstream.add(URL, PAYLOAD + b"tampered")
        with upstream.client() as client:
            with pytest.raises(IntegrityError, match="Checksum mismatch"):
                download_archive(client, _release(sha256_bytes(PAYLOAD)), tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_pin_mismatch_fails_before_download(self, upstream, tmp_path):
        upstream.add(URL, PAYLOAD)
        with upstream.client() as client:
            with pytest.raises(IntegrityError):
                download_archive(
                    client, _release(sha256_bytes(PAYLOAD)), tmp_path, checksum_pin="0" * 64
                )
        assert not upstream.fetched(URL)

    def test_unverified_warns(self, upstream, tmp_path, caplog):
        upstream.add(URL, PAYLOAD)
        with caplog.at_level(logging.WARNING, logger="socat_build.core.integrity"):
            with upstream.client() as client:
                archive = download_archive(client, _release(None), tmp_path)
        assert not archive.verified
        assert archive.path.exists()
        assert any("UNVERIFIED" in r.getMessage() for r in caplog.records)

    def test_http_error(self, upstream, tmp_path):
        with upstream.client() as client:
            with pytest.raises(NetworkError, match="404"):
                download_archive(client, _release(None), tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_transport_error(self, tmp_path):
        def handler(request):
            raise httpx.ReadTimeout("stalled", request=request)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(NetworkError):
                download_archive(client, _release(None), tmp_path)
        assert not (tmp_path / "socat-1.7.4.4.tar.gz.part").exists()
