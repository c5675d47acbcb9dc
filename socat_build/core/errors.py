"""
Errors — fail-closed taxonomy for the build pipeline.

Every error carries a stable ``kind`` tag.  The runner turns the first
raised error into a tagged stage failure and the CLI prints it as
``FAILED [<kind>]: <message>``.
"""
from __future__ import annotations

from typing import Optional


class BuildOrchestratorError(Exception):
    """Base class for all fail-closed pipeline errors."""

    kind = "Error"


class NetworkError(BuildOrchestratorError):
    """Listing, manifest or archive fetch failed (unreachable, timeout, HTTP status)."""

    kind = "NetworkError"


class NotFound(BuildOrchestratorError):
    """No release matches the requested name/version."""

    kind = "NotFound"


class IntegrityError(BuildOrchestratorError):
    """Checksum disagreement between pin, published value and downloaded bytes."""

    kind = "IntegrityError"


class BuildError(BuildOrchestratorError):
    """An external build tool exited non-zero."""

    kind = "BuildError"

    def __init__(self, message: str, command: str = "", output: str = ""):
        super().__init__(message)
        self.command = command
        self.output = output

    def __str__(self) -> str:
        text = super().__str__()
        if self.output:
            text = f"{text}\n--- tool output (tail) ---\n{self.output}"
        return text


class VersionMismatch(BuildOrchestratorError):
    """The built binary reports a different version than the one resolved."""

    kind = "VersionMismatch"


class FeatureMismatch(BuildOrchestratorError):
    """The built binary's feature markers disagree with expectations."""

    kind = "FeatureMismatch"

    def __init__(
        self,
        message: str,
        missing: Optional[list] = None,
        unexpected: Optional[list] = None,
    ):
        super().__init__(message)
        self.missing = sorted(missing or [])
        self.unexpected = sorted(unexpected or [])


class ConfigError(BuildOrchestratorError):
    """Invalid caller configuration."""

    kind = "ConfigError"


class PublishError(BuildOrchestratorError):
    """The verified binary, its checksum sidecar or the reporter outputs could not be written."""

    kind = "PublishError"
