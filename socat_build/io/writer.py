"""
Writer — hand the verified binary and its metadata to the publisher.

Filesystem layout:
    <output_dir>/<binary>
    <output_dir>/<binary>.sha256      "<sha256>  <binary>"
    <output_dir>/build_report.json

When ``GITHUB_OUTPUT`` is set, the same values are appended there as
``KEY=value`` lines for later workflow steps.
"""
import json
import logging
import shutil
from pathlib import Path
from typing import Dict

from socat_build.core.binary import describe_binary
from socat_build.io.schema import ArtifactRecord, BuildReport

logger = logging.getLogger(__name__)

REPORT_FILENAME = "build_report.json"


def publish_binary(binary: Path, output_dir: Path, filename: str) -> ArtifactRecord:
    """
    Copy *binary* into *output_dir* as *filename* and write its checksum sidecar.

    Returns the artifact facts of the copy.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    dest = output_dir / filename
    shutil.copy2(binary, dest)

    info = describe_binary(dest)
    if not info.is_elf:
        logger.warning(
            "%s is not an ELF binary (%s); link and strip facts unavailable",
            dest,
            info.binary_type,
        )
    checksum_path = output_dir / f"{filename}.sha256"
    checksum_path.write_text(f"{info.sha256}  {filename}\n")

    logger.info("Artifact %s (%d bytes, sha256 %s)", dest, info.size, info.sha256)
    return ArtifactRecord(
        path=str(dest),
        filename=filename,
        checksum_file=str(checksum_path),
        sha256=info.sha256,
        size_bytes=info.size,
        timestamp=info.timestamp,
        binary_type=info.binary_type,
        statically_linked=info.statically_linked,
        stripped=info.stripped,
    )


def write_report(report: BuildReport, output_dir: Path) -> Path:
    """Write build_report.json into *output_dir* and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    report_path = output_dir / REPORT_FILENAME
    report_path.write_text(
        json.dumps(
            report.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )
    return report_path


def github_output_values(report: BuildReport) -> Dict[str, str]:
    """Named outputs for a successful build."""
    artifact = report.artifact
    if artifact is None:
        return {}
    return {
        "SOCAT_VERSION": report.resolved_version or "",
        "SOCAT_FILE": artifact.path,
        "SOCAT_CHECKSUM_FILE": artifact.checksum_file,
        "SOCAT_CHECKSUM": artifact.sha256,
        "SOCAT_SIZE": str(artifact.size_bytes),
        "SOCAT_TIMESTAMP": artifact.timestamp,
        "SOCAT_BINARY_TYPE": artifact.binary_type,
    }


def write_github_output(path: Path, values: Dict[str, str]) -> None:
    """Append ``KEY=value`` lines to the GitHub Actions output file."""
    with open(path, "a", encoding="utf-8") as f:
        for key, value in values.items():
            f.write(f"{key}={value}\n")
