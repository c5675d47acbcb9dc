"""
Verdict — ACCEPT / REJECT for a finished binary, with reason enums.

Two checks against the parsed self report:
  1. Version: the reported token must equal the resolved version exactly.
  2. Features: every built dependency's marker and every explicitly
     enabled feature must be compiled in; explicitly disabled features
     must not be; when the whole catalog was disabled first, the
     compiled-in catalog markers must match exactly.

A dependency that was built but whose feature configure quietly turned
off is a REJECT, never a warning.
"""
from __future__ import annotations

from enum import Enum, unique
from typing import Iterable, List, Tuple

from socat_build.core.errors import FeatureMismatch, VersionMismatch
from socat_build.core.features import FeatureExpectation
from socat_build.core.self_report import SelfReport, marker_for


@unique
class Verdict(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


@unique
class RejectReason(str, Enum):
    VERSION_MISSING = "VERSION_MISSING"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    DEPENDENCY_FEATURE_MISSING = "DEPENDENCY_FEATURE_MISSING"
    FEATURE_MISSING = "FEATURE_MISSING"
    FEATURE_UNEXPECTED = "FEATURE_UNEXPECTED"


_VERSION_REASONS = {RejectReason.VERSION_MISSING.value, RejectReason.VERSION_MISMATCH.value}


def judge_artifact(
    report: SelfReport,
    expected_version: str,
    expectation: FeatureExpectation,
    dependency_features: Iterable[str],
    catalog: Iterable[str],
) -> Tuple[Verdict, List[str], List[str], List[str]]:
    """
    Evaluate *report* against expectations.

    Returns (Verdict, reasons, missing_markers, unexpected_markers).
    """
    reasons: List[str] = []

    if report.version is None:
        reasons.append(RejectReason.VERSION_MISSING.value)
    elif report.version != expected_version:
        reasons.append(RejectReason.VERSION_MISMATCH.value)

    compiled_in = report.compiled_in
    dep_markers = {marker_for(f) for f in dependency_features}
    required = {marker_for(f) for f in expectation.required}
    forbidden = {marker_for(f) for f in expectation.forbidden}

    missing_deps = dep_markers - compiled_in
    if missing_deps:
        reasons.append(RejectReason.DEPENDENCY_FEATURE_MISSING.value)

    missing = (required - compiled_in) | missing_deps
    if required - compiled_in:
        reasons.append(RejectReason.FEATURE_MISSING.value)

    if expectation.exact:
        catalog_markers = {marker_for(f) for f in catalog}
        unexpected = (compiled_in & catalog_markers) - required - dep_markers
    else:
        unexpected = forbidden & compiled_in
    if unexpected:
        reasons.append(RejectReason.FEATURE_UNEXPECTED.value)

    verdict = Verdict.REJECT if reasons else Verdict.ACCEPT
    return verdict, reasons, sorted(missing), sorted(unexpected)


def enforce_artifact(
    report: SelfReport,
    expected_version: str,
    expectation: FeatureExpectation,
    dependency_features: Iterable[str],
    catalog: Iterable[str],
) -> List[str]:
    """
    Raise on REJECT; return the (empty) reason list on ACCEPT.

    Version problems take precedence over feature problems.
    """
    verdict, reasons, missing, unexpected = judge_artifact(
        report, expected_version, expectation, dependency_features, catalog
    )
    if verdict == Verdict.ACCEPT:
        return reasons

    if _VERSION_REASONS.intersection(reasons):
        raise VersionMismatch(
            f"Binary reports version {report.version!r}, expected {expected_version!r}"
        )
    details = []
    if missing:
        details.append(f"not compiled in: {', '.join(missing)}")
    if unexpected:
        details.append(f"unexpectedly compiled in: {', '.join(unexpected)}")
    raise FeatureMismatch(
        f"Feature markers disagree with expectations ({'; '.join(details)})",
        missing=missing,
        unexpected=unexpected,
    )
