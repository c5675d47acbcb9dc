"""
Tests for artifact publication, the build report and GitHub outputs.
"""
import json
import logging
import os

from socat_build.core.binary import _describe_elf, describe_binary
from socat_build.io.schema import BuildReport, FailureRecord
from socat_build.io.writer import (
    REPORT_FILENAME,
    github_output_values,
    publish_binary,
    write_github_output,
    write_report,
)
from socat_build.tests.conftest import sha256_bytes

SCRIPT = b"#!/bin/sh\necho socat\n"


def _binary(tmp_path):
    path = tmp_path / "build" / "socat"
    path.parent.mkdir()
    path.write_bytes(SCRIPT)
    os.chmod(path, 0o755)
    return path


class TestDescribeBinary:

    def test_script(self, tmp_path):
        info = describe_binary(_binary(tmp_path))
        assert info.sha256 == sha256_bytes(SCRIPT)
        assert info.size == len(SCRIPT)
        assert not info.is_elf
        assert info.binary_type == "script text executable"

    def test_data(self, tmp_path):
        path = tmp_path / "blob"
        path.write_bytes(b"\x00\x01\x02")
        assert describe_binary(path).binary_type == "data"


class _FakeELF:
    """Just enough of ELFFile for the descriptor."""

    def __init__(self, e_type, segments=(), sections=(), elfclass=64, little_endian=True):
        self.header = {"e_type": e_type, "e_machine": "EM_X86_64"}
        self._segments = [{"p_type": t} for t in segments]
        self._sections = set(sections)
        self.elfclass = elfclass
        self.little_endian = little_endian

    def iter_segments(self):
        return iter(self._segments)

    def get_section_by_name(self, name):
        return object() if name in self._sections else None


class TestDescribeElf:

    def test_static_stripped(self):
        descriptor, static, stripped = _describe_elf(_FakeELF("ET_EXEC", segments=("PT_LOAD",)))
        assert descriptor == "ELF 64-bit LSB executable, x86-64, statically linked, stripped"
        assert static and stripped

    def test_dynamic_pie(self):
        elf = _FakeELF("ET_DYN", segments=("PT_INTERP", "PT_DYNAMIC"), sections=(".symtab",))
        descriptor, static, stripped = _describe_elf(elf)
        assert descriptor == (
            "ELF 64-bit LSB pie executable, x86-64, dynamically linked, not stripped"
        )
        assert not static and not stripped


class TestPublishBinary:

    def test_copy_and_sidecar(self, tmp_path):
        out = tmp_path / "out"
        artifact = publish_binary(_binary(tmp_path), out, "socat")
        assert (out / "socat").read_bytes() == SCRIPT
        assert os.access(out / "socat", os.X_OK)
        assert (out / "socat.sha256").read_text() == f"{sha256_bytes(SCRIPT)}  socat\n"
        assert artifact.checksum_file == str(out / "socat.sha256")
        assert artifact.size_bytes == len(SCRIPT)

    def test_non_elf_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="socat_build.io.writer"):
            artifact = publish_binary(_binary(tmp_path), tmp_path / "out", "socat")
        assert artifact.binary_type == "script text executable"
        assert any("is not an ELF binary" in r.getMessage() for r in caplog.records)


class TestReport:

    def test_json_written(self, tmp_path):
        report = BuildReport(profile_id="socat-custom-static", variant="custom")
        report.failure = FailureRecord(kind="NotFound", stage="resolve", message="nope")
        path = write_report(report, tmp_path)
        assert path.name == REPORT_FILENAME
        data = json.loads(path.read_text())
        assert data["package_name"] == "socat_build"
        assert data["status"] == "FAILED"
        assert data["failure"]["kind"] == "NotFound"
        assert data["artifact"] is None


class TestGithubOutput:

    def test_values_and_append(self, tmp_path):
        artifact = publish_binary(_binary(tmp_path), tmp_path / "out", "socat")
        report = BuildReport(
            profile_id="socat-custom-static",
            variant="custom",
            status="SUCCESS",
            resolved_version="1.7.4.4",
            artifact=artifact,
        )
        values = github_output_values(report)
        assert values["SOCAT_VERSION"] == "1.7.4.4"
        assert values["SOCAT_FILE"] == artifact.path
        assert values["SOCAT_CHECKSUM_FILE"] == artifact.checksum_file

        gh = tmp_path / "github_output"
        gh.write_text("EARLIER=1\n")
        write_github_output(gh, values)
        lines = gh.read_text().splitlines()
        assert lines[0] == "EARLIER=1"
        assert "SOCAT_VERSION=1.7.4.4" in lines
        assert f"SOCAT_CHECKSUM={artifact.sha256}" in lines

    def test_no_artifact_no_values(self):
        report = BuildReport(profile_id="p", variant="custom")
        assert github_output_values(report) == {}
