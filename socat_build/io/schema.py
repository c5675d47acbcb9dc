"""
Schema — Pydantic models for the build report.

One output per invocation:
  build_report.json — release provenance, effective configuration,
                      artifact facts and the verification verdict.

Runtime contract fields (present in every report):
  package_name, builder_version, schema_version, profile_id.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from socat_build import BUILDER_NAME, BUILDER_VERSION, SCHEMA_VERSION


# ── Release provenance ───────────────────────────────────────────────────────

class ReleaseRecord(BaseModel):
    """One resolved and downloaded upstream release."""

    name: str
    version: str
    archive_name: str
    url: str
    published_checksum: Optional[str] = None
    sha256: Optional[str] = None     # of the downloaded archive
    verified: bool = False           # False ⇒ no checksum to compare against


# ── Failure ──────────────────────────────────────────────────────────────────

class FailureRecord(BaseModel):
    kind: str                        # NetworkError | NotFound | ...
    stage: str
    message: str


# ── Artifact ─────────────────────────────────────────────────────────────────

class ArtifactRecord(BaseModel):
    """Facts about the verified binary, as handed to the publisher."""

    path: str
    filename: str
    checksum_file: str
    sha256: str
    size_bytes: int
    timestamp: str                   # ISO-8601 UTC modification time
    binary_type: str
    statically_linked: bool = False
    stripped: bool = False


# ── Report ───────────────────────────────────────────────────────────────────

class BuildReport(BaseModel):
    """Top-level build report — build_report.json."""

    package_name: str = BUILDER_NAME
    builder_version: str = BUILDER_VERSION
    schema_version: str = SCHEMA_VERSION
    profile_id: str
    variant: str

    status: str = "FAILED"           # SUCCESS | FAILED
    resolved_version: Optional[str] = None
    reported_version: Optional[str] = None

    releases: List[ReleaseRecord] = Field(default_factory=list)
    dependencies_built: List[str] = Field(default_factory=list)

    configure_flags: List[str] = Field(default_factory=list)
    link_directive: str = ""
    scratch_dir: Optional[str] = None

    feature_markers: Dict[str, bool] = Field(default_factory=dict)
    compiled_in: List[str] = Field(default_factory=list)
    help_excerpt: Optional[str] = None

    verdict: Optional[str] = None    # ACCEPT | REJECT
    reasons: List[str] = Field(default_factory=list)

    artifact: Optional[ArtifactRecord] = None
    failure: Optional[FailureRecord] = None

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
