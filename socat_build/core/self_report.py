"""
Self report — run the built binary and parse what it says about itself.

Two invocations:
  ``<binary> -h``   help/usage report (kept for diagnostics)
  ``<binary> -V``   version line plus the compiled-in feature list, e.g.::

      socat version 1.7.4.4 on Nov 13 2022 12:20:05
      features:
        #define WITH_STDIO 1
        #undef WITH_IP6
        #define WITH_MSGLEVEL 0 /*debug*/

Exit codes are recorded but never decide anything; only parsed content
does.
"""
from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

logger = logging.getLogger(__name__)

SELF_REPORT_TIMEOUT = 60

_DEFINE_RE = re.compile(r"^[ \t]*#[ \t]*define[ \t]+(WITH_\w+)[ \t]*(\S*)", re.MULTILINE)
_UNDEF_RE = re.compile(r"^[ \t]*#[ \t]*undef[ \t]+(WITH_\w+)", re.MULTILINE)


@dataclass(frozen=True)
class SelfReport:
    """Parsed output of the two self-report invocations."""

    version: Optional[str]
    markers: Dict[str, bool] = field(default_factory=dict)
    help_text: str = ""
    version_text: str = ""
    help_exit_code: int = 0
    version_exit_code: int = 0

    @property
    def compiled_in(self) -> FrozenSet[str]:
        return frozenset(m for m, on in self.markers.items() if on)


def marker_for(feature: str) -> str:
    """``abstract-unix`` → ``WITH_ABSTRACT_UNIX``."""
    return "WITH_" + feature.upper().replace("-", "_")


def parse_markers(text: str) -> Dict[str, bool]:
    """
    Map every ``WITH_*`` marker in *text* to compiled-in or not.

    ``#define WITH_X`` with no value or a non-zero value is compiled in;
    ``#define WITH_X 0`` and ``#undef WITH_X`` are not.
    """
    markers: Dict[str, bool] = {}
    for name, value in _DEFINE_RE.findall(text):
        markers[name] = value != "0"
    for name in _UNDEF_RE.findall(text):
        markers[name] = False
    return markers


def parse_version(text: str, version_pattern: str) -> Optional[str]:
    """Return the first capture group of *version_pattern* in *text*."""
    m = re.search(version_pattern, text)
    return m.group(1) if m else None


def _invoke(binary: Path, arg: str) -> Tuple[int, str]:
    try:
        result = subprocess.run(
            [str(binary), arg],
            capture_output=True,
            text=True,
            errors="replace",
            timeout=SELF_REPORT_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        logger.warning("%s %s timed out after %ss", binary.name, arg, SELF_REPORT_TIMEOUT)
        return -1, ""
    except OSError as e:
        logger.warning("%s %s could not run: %s", binary.name, arg, e)
        return -1, ""
    return result.returncode, result.stdout + result.stderr


def collect_self_report(
    binary: Path,
    version_pattern: str,
    help_arg: str = "-h",
    version_arg: str = "-V",
) -> SelfReport:
    """Run *binary* for its help and version reports and parse them."""
    help_code, help_text = _invoke(binary, help_arg)
    version_code, version_text = _invoke(binary, version_arg)
    logger.debug(
        "Self report exit codes: %s=%d %s=%d",
        help_arg, help_code, version_arg, version_code,
    )

    return SelfReport(
        version=parse_version(version_text, version_pattern),
        markers=parse_markers(version_text),
        help_text=help_text,
        version_text=version_text,
        help_exit_code=help_code,
        version_exit_code=version_code,
    )
