"""
Build runner — top-level orchestration: settings → verified socat binary.

Stages run strictly in order, each consuming the previous one's output:

    prepare → resolve → download → dependencies → build → strip
            → verify-artifact → publish → report

Every stage returns either its result or a tagged ``StageFailure``; the
first failure ends the run and is recorded in the build report.  No
stage is retried and nothing is published unless verify-artifact
accepted the binary.
"""
from __future__ import annotations

import argparse
import logging
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from socat_build.config import Settings
from socat_build.core.catalog import (
    ChecksumManifestCatalog,
    HtmlListingCatalog,
    ReleaseCatalog,
    make_client,
)
from socat_build.core.errors import (
    BuildError,
    BuildOrchestratorError,
    ConfigError,
    PublishError,
)
from socat_build.core.executor import BuildExecutor, BuildUnit
from socat_build.core.features import FeatureToggleSet
from socat_build.core.graph import BuiltDependency, DependencyBuildGraph, search_paths
from socat_build.core.integrity import VerifiedArchive, check_pin, download_archive
from socat_build.core.resolver import PackageRelease, resolve_release
from socat_build.core.self_report import SelfReport, collect_self_report
from socat_build.core.version import Version
from socat_build.io.schema import BuildReport, FailureRecord, ReleaseRecord
from socat_build.io.writer import (
    REPORT_FILENAME,
    github_output_values,
    publish_binary,
    write_github_output,
    write_report,
)
from socat_build.policy.profile import BuildProfile, Upstream
from socat_build.policy.verdict import enforce_artifact, judge_artifact

logger = logging.getLogger(__name__)

VARIANTS = ("custom", "standard")


@dataclass(frozen=True)
class StageFailure:
    """The first fail-closed error of a run, tagged with its stage."""

    kind: str
    stage: str
    message: str


def _run_stage(
    stage: str,
    fn: Callable[..., Any],
    *args: Any,
) -> Tuple[Any, Optional[StageFailure]]:
    """Run one stage; return (result, None) or (None, StageFailure)."""
    logger.info("── stage: %s", stage)
    try:
        return fn(*args), None
    except BuildOrchestratorError as e:
        logger.error("Stage %s failed: %s: %s", stage, e.kind, e)
        return None, StageFailure(kind=e.kind, stage=stage, message=str(e))


# ── Profile and catalogs ─────────────────────────────────────────────────────

def profile_from_settings(settings: Settings, variant: Optional[str] = None) -> BuildProfile:
    """Build the profile for *variant* and apply upstream overrides."""
    variant = variant or settings.BUILD_VARIANT
    if variant == "custom":
        profile = BuildProfile.custom()
    elif variant == "standard":
        profile = BuildProfile.standard(openssl_major=settings.OPENSSL_MAJOR_VERSION)
    else:
        raise ConfigError(f"Unknown variant {variant!r}; expected one of {', '.join(VARIANTS)}")

    for name in [profile.target.name, *profile.dependency_upstreams]:
        url = settings.listing_override(name)
        if url:
            profile = profile.with_upstream(name, listing_url=url)
    if settings.SOCAT_MANIFEST_URL:
        profile = profile.with_upstream(profile.target.name, manifest_url=settings.SOCAT_MANIFEST_URL)
    if "openssl" in profile.dependency_upstreams:
        _check_openssl_pin(settings)
    return profile.with_exe_suffix(settings.exe_suffix())


def _check_openssl_pin(settings: Settings) -> None:
    """A pinned OpenSSL version must belong to the selected major line."""
    pin, _ = settings.pins("openssl")
    if not pin:
        return
    try:
        major = Version.parse(pin).major
    except ValueError as e:
        raise ConfigError(f"OPENSSL_VERSION {pin!r} is not a release version") from e
    if major != settings.OPENSSL_MAJOR_VERSION:
        raise ConfigError(
            f"OPENSSL_VERSION {pin} belongs to OpenSSL {major}, "
            f"but OPENSSL_MAJOR_VERSION is {settings.OPENSSL_MAJOR_VERSION}"
        )


def catalog_for(upstream: Upstream, client: httpx.Client) -> ReleaseCatalog:
    if upstream.manifest_url:
        return ChecksumManifestCatalog(upstream.manifest_url, client, upstream.listing_url)
    return HtmlListingCatalog(upstream.listing_url, client, upstream.checksum_suffix)


# ── Stages ───────────────────────────────────────────────────────────────────

SCRATCH_CLAIM = ".socat_build.claim"


def claim_scratch_dir(configured: Optional[str]) -> Path:
    """
    Return a scratch directory that belongs to this invocation alone.

    Unset: a fresh directory under the system temp dir.  Set: the
    directory must be absent or empty; an exclusively created claim file
    keeps two concurrent runs from sharing it.
    """
    if not configured:
        try:
            return Path(tempfile.mkdtemp(prefix="socat_build-"))
        except OSError as e:
            raise ConfigError(f"Cannot create a temporary scratch directory: {e}") from e

    scratch_dir = Path(configured)
    try:
        scratch_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create scratch directory {scratch_dir}: {e}") from e

    claim = scratch_dir / SCRATCH_CLAIM
    try:
        with open(claim, "x", encoding="utf-8"):
            pass
    except FileExistsError as e:
        raise ConfigError(
            f"Scratch directory {scratch_dir} is not empty; it is claimed by another run"
        ) from e
    except OSError as e:
        raise ConfigError(f"Cannot claim scratch directory {scratch_dir}: {e}") from e

    if any(p.name != SCRATCH_CLAIM for p in scratch_dir.iterdir()):
        claim.unlink()
        raise ConfigError(
            f"Scratch directory {scratch_dir} is not empty; "
            f"every invocation needs its own scratch directory"
        )
    return scratch_dir


def _prepare(
    settings: Settings,
    profile: BuildProfile,
) -> Tuple[FeatureToggleSet, Path]:
    toggles = settings.feature_toggles()
    toggles.validate(profile.feature_catalog)
    toggles = toggles.with_defaults(profile.default_disabled, profile.default_enabled)
    logger.info(
        "Features: disable=%s enable=%s",
        " ".join(toggles.disabled or ()) or "(none)",
        " ".join(toggles.enabled or ()) or "(none)",
    )

    scratch_dir = claim_scratch_dir(settings.BUILD_SCRATCH_DIR)
    logger.info("Scratch directory: %s", scratch_dir)
    return toggles, scratch_dir


def _resolve_all(
    settings: Settings,
    profile: BuildProfile,
    client: httpx.Client,
) -> Dict[str, PackageRelease]:
    """Resolve the target and every dependency; check pins before any download."""
    upstreams = [profile.target] + [
        profile.dependency_upstreams[node.name] for node in profile.dependencies
    ]
    releases: Dict[str, PackageRelease] = {}
    for upstream in upstreams:
        version_pin, checksum_pin = settings.pins(upstream.name)
        release = resolve_release(
            catalog_for(upstream, client),
            upstream.name,
            version=version_pin,
            extension=upstream.extension,
            version_pattern=upstream.version_pattern,
        )
        if checksum_pin and not version_pin:
            logger.warning(
                "Checksum pin for %s without a version pin applies to the latest release %s",
                upstream.name,
                release.version,
            )
        check_pin(release, checksum_pin)
        releases[upstream.name] = release
    return releases


def _download_all(
    settings: Settings,
    releases: Dict[str, PackageRelease],
    client: httpx.Client,
    download_dir: Path,
) -> Dict[str, VerifiedArchive]:
    archives: Dict[str, VerifiedArchive] = {}
    for name, release in releases.items():
        _, checksum_pin = settings.pins(name)
        archives[name] = download_archive(client, release, download_dir, checksum_pin)
    return archives


def _build_dependencies(
    profile: BuildProfile,
    archives: Dict[str, VerifiedArchive],
    executor: BuildExecutor,
    scratch_dir: Path,
) -> List[BuiltDependency]:
    graph = DependencyBuildGraph(profile.dependencies)
    if graph.is_empty:
        logger.info("No dependencies to build for variant %s", profile.variant)
        return []
    logger.info("Dependency build order: %s", ", ".join(graph.order))
    return graph.build_all(archives, executor, scratch_dir)


def _build_target(
    profile: BuildProfile,
    archive: VerifiedArchive,
    built: List[BuiltDependency],
    toggles: FeatureToggleSet,
    executor: BuildExecutor,
    scratch_dir: Path,
) -> Path:
    base = scratch_dir / profile.target.name
    source_dir = executor.unpack(archive, base / "src")
    includes, libs = search_paths(built)
    unit = BuildUnit(
        release=archive.release,
        source_dir=source_dir,
        install_dir=base / "install",
        configure_flags=toggles.configure_flags(),
        include_paths=includes,
        lib_paths=libs,
    )
    executor.build(unit, profile.target_recipe)

    binary = source_dir / profile.binary_name
    if not binary.is_file():
        raise BuildError(f"Build finished but {binary} was not produced")
    return binary


def _verify_artifact(
    profile: BuildProfile,
    binary: Path,
    expected_version: str,
    toggles: FeatureToggleSet,
    built: List[BuiltDependency],
    report: BuildReport,
) -> SelfReport:
    self_report = collect_self_report(binary, profile.version_report_pattern)
    report.reported_version = self_report.version
    report.feature_markers = dict(sorted(self_report.markers.items()))
    report.compiled_in = sorted(self_report.compiled_in)
    if self_report.help_text:
        report.help_excerpt = self_report.help_text.strip().splitlines()[0]

    judge_args = (
        self_report,
        expected_version,
        toggles.expectation(profile.feature_catalog),
        [b.feature for b in built if b.feature],
        profile.feature_catalog,
    )
    verdict, reasons, _, _ = judge_artifact(*judge_args)
    report.verdict = verdict.value
    report.reasons = reasons
    enforce_artifact(*judge_args)
    logger.info(
        "Binary reports version %s with %d compiled-in features",
        self_report.version,
        len(self_report.compiled_in),
    )
    return self_report


def _publish(
    settings: Settings,
    profile: BuildProfile,
    binary: Path,
    output_dir: Path,
    report: BuildReport,
) -> None:
    try:
        report.artifact = publish_binary(binary, output_dir, profile.binary_name)
    except OSError as e:
        raise PublishError(f"Cannot publish {profile.binary_name} to {output_dir}: {e}") from e
    if settings.GITHUB_OUTPUT:
        try:
            write_github_output(Path(settings.GITHUB_OUTPUT), github_output_values(report))
        except OSError as e:
            raise PublishError(
                f"Cannot write GitHub outputs to {settings.GITHUB_OUTPUT}: {e}"
            ) from e
    report.status = "SUCCESS"


def _write_report(report: BuildReport, output_dir: Path) -> Path:
    try:
        return write_report(report, output_dir)
    except OSError as e:
        raise PublishError(f"Cannot write {REPORT_FILENAME} to {output_dir}: {e}") from e


# ── Orchestration ────────────────────────────────────────────────────────────

def run_build(
    settings: Settings,
    variant: Optional[str] = None,
    client: Optional[httpx.Client] = None,
    executor: Optional[BuildExecutor] = None,
    profile: Optional[BuildProfile] = None,
) -> Tuple[BuildReport, Optional[StageFailure]]:
    """
    Run one complete build.

    Parameters
    ----------
    settings : Settings
        Pins, feature lists, directories.
    variant : str, optional
        ``custom`` or ``standard``; defaults to ``settings.BUILD_VARIANT``.
    client : httpx.Client, optional
        HTTP client for catalogs and downloads.  Created (and closed) here
        when omitted.
    executor : BuildExecutor, optional
        Defaults to one configured from *settings*.
    profile : BuildProfile, optional
        Use this profile as is instead of deriving one from *settings*.

    Returns
    -------
    (BuildReport, StageFailure or None)
    """
    output_dir = Path(settings.BUILD_OUTPUT_DIR)

    if profile is None:
        profile, failure = _run_stage("profile", profile_from_settings, settings, variant)
        if failure:
            report = BuildReport(profile_id="unknown", variant=variant or settings.BUILD_VARIANT)
            return _finish(report, failure, output_dir)

    report = BuildReport(profile_id=profile.profile_id, variant=profile.variant)
    executor = executor or BuildExecutor(
        jobs=settings.BUILD_JOBS,
        link_directive=settings.SOCAT_LDFLAGS,
    )
    report.link_directive = executor.link_directive

    owns_client = client is None
    if client is None:
        client = make_client(settings.NETWORK_TIMEOUT)
    try:
        failure = _pipeline(settings, profile, client, executor, output_dir, report)
    finally:
        if owns_client:
            client.close()
    return _finish(report, failure, output_dir)


def _pipeline(
    settings: Settings,
    profile: BuildProfile,
    client: httpx.Client,
    executor: BuildExecutor,
    output_dir: Path,
    report: BuildReport,
) -> Optional[StageFailure]:
    # ── 1. prepare ───────────────────────────────────────────────────
    prepared, failure = _run_stage("prepare", _prepare, settings, profile)
    if failure:
        return failure
    toggles, scratch_dir = prepared
    report.scratch_dir = str(scratch_dir)
    report.configure_flags = toggles.configure_flags()

    # ── 2. resolve ───────────────────────────────────────────────────
    releases, failure = _run_stage("resolve", _resolve_all, settings, profile, client)
    if failure:
        return failure
    target_release = releases[profile.target.name]
    report.resolved_version = target_release.version
    report.releases = [
        ReleaseRecord(
            name=r.name,
            version=r.version,
            archive_name=r.archive_name,
            url=r.url,
            published_checksum=r.checksum,
        )
        for r in releases.values()
    ]

    # ── 3. download + verify ─────────────────────────────────────────
    archives, failure = _run_stage(
        "download", _download_all, settings, releases, client, scratch_dir / "downloads"
    )
    if failure:
        return failure
    for record in report.releases:
        archive = archives[record.name]
        record.sha256 = archive.sha256
        record.verified = archive.verified

    # ── 4. dependencies ──────────────────────────────────────────────
    built, failure = _run_stage(
        "dependencies", _build_dependencies, profile, archives, executor, scratch_dir
    )
    if failure:
        return failure
    report.dependencies_built = [b.name for b in built]

    # ── 5. target ────────────────────────────────────────────────────
    binary, failure = _run_stage(
        "build", _build_target,
        profile, archives[profile.target.name], built, toggles, executor, scratch_dir,
    )
    if failure:
        return failure

    if settings.SOCAT_STRIP:
        _, failure = _run_stage("strip", executor.strip, binary)
        if failure:
            return failure

    # ── 6. verify artifact ───────────────────────────────────────────
    _, failure = _run_stage(
        "verify-artifact", _verify_artifact,
        profile, binary, target_release.version, toggles, built, report,
    )
    if failure:
        return failure

    # ── 7. publish ───────────────────────────────────────────────────
    _, failure = _run_stage("publish", _publish, settings, profile, binary, output_dir, report)
    return failure


def _record_failure(report: BuildReport, failure: StageFailure) -> None:
    report.status = "FAILED"
    report.failure = FailureRecord(
        kind=failure.kind, stage=failure.stage, message=failure.message
    )


def _finish(
    report: BuildReport,
    failure: Optional[StageFailure],
    output_dir: Path,
) -> Tuple[BuildReport, Optional[StageFailure]]:
    """Write the build report; failing to write it fails an otherwise good run."""
    if failure:
        _record_failure(report, failure)
    path, report_failure = _run_stage("report", _write_report, report, output_dir)
    if report_failure:
        if failure is None:
            failure = report_failure
            _record_failure(report, failure)
        return report, failure
    logger.info("Build report written to %s (%s)", path, report.status)
    return report, failure


# ── CLI ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for socat_build."""
    parser = argparse.ArgumentParser(
        description="socat_build — resolve, verify, build and self-check a static socat binary",
    )
    parser.add_argument(
        "--variant",
        choices=VARIANTS,
        default=None,
        help="custom (socat only, minimal features) or standard (with ncurses, readline, OpenSSL)",
    )
    parser.add_argument(
        "--scratch-dir",
        type=Path,
        default=None,
        help="Working directory for this run (must be empty or absent; default: a fresh temporary directory)",
    )
    parser.add_argument(
        "-o", "--output-dir",
        type=Path,
        default=None,
        help="Directory for the binary, checksum sidecar and build report",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        settings = Settings()
    except ValidationError as e:
        failure = StageFailure(
            kind=ConfigError.kind,
            stage="settings",
            message="Invalid settings: " + "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ),
        )
        logger.error("%s", failure.message)
        output_dir = args.output_dir or Path(Settings.model_fields["BUILD_OUTPUT_DIR"].default)
        report = BuildReport(profile_id="unknown", variant=args.variant or "unknown")
        _finish(report, failure, output_dir)
        print(f"FAILED [{failure.kind}]: {failure.message}", file=sys.stderr)
        return 1

    if args.scratch_dir is not None:
        settings.BUILD_SCRATCH_DIR = str(args.scratch_dir)
    if args.output_dir is not None:
        settings.BUILD_OUTPUT_DIR = str(args.output_dir)

    report, failure = run_build(settings, variant=args.variant)

    if failure:
        print(f"FAILED [{failure.kind}]: {failure.message}", file=sys.stderr)
        return 1

    artifact = report.artifact
    print(f"socat {report.resolved_version} ({report.variant})")
    print(f"Binary: {artifact.path}")
    print(f"Type: {artifact.binary_type}")
    print(f"Size: {artifact.size_bytes} bytes")
    print(f"SHA-256: {artifact.sha256}")
    print(f"Features: {', '.join(report.compiled_in) or '(none)'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
