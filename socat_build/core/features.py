"""
Feature toggles — tri-state enable/disable lists for configure.

Each list is one of:
  None        unset, the profile default applies
  ()          explicitly empty, nothing is passed
  (a, b, ...) exactly these names

Composition is disable-then-enable, so a name present in both lists
ends up enabled.  The catalog of valid names is supplied by the profile;
this module holds no feature names of its own.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple

from socat_build.core.errors import ConfigError

_FLAG_PREFIX_RE = re.compile(r"^--(?:enable|disable)-")


def parse_feature_list(text: Optional[str]) -> Optional[Tuple[str, ...]]:
    """
    Parse a feature list from environment text.

    ``None`` stays unset; an empty or blank string is explicitly empty.
    Tokens are separated by whitespace or commas and may carry an
    ``--enable-``/``--disable-`` prefix, which is dropped.
    """
    if text is None:
        return None
    names: List[str] = []
    for token in re.split(r"[\s,]+", text.strip()):
        if not token:
            continue
        name = _FLAG_PREFIX_RE.sub("", token).lower()
        if name not in names:
            names.append(name)
    return tuple(names)


@dataclass(frozen=True)
class FeatureExpectation:
    """Which feature markers the finished binary must (not) report."""

    required: FrozenSet[str]
    forbidden: FrozenSet[str]
    exact: bool   # True when the whole catalog was disabled first


@dataclass(frozen=True)
class FeatureToggleSet:
    """Ordered disable/enable lists with unset-vs-empty semantics."""

    disabled: Optional[Tuple[str, ...]] = None
    enabled: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_text(
        cls,
        disabled: Optional[str] = None,
        enabled: Optional[str] = None,
    ) -> "FeatureToggleSet":
        return cls(disabled=parse_feature_list(disabled), enabled=parse_feature_list(enabled))

    def with_defaults(
        self,
        default_disabled: Iterable[str],
        default_enabled: Iterable[str],
    ) -> "FeatureToggleSet":
        """Fill unset lists from the defaults; explicit lists are kept as-is."""
        return FeatureToggleSet(
            disabled=self.disabled if self.disabled is not None else tuple(default_disabled),
            enabled=self.enabled if self.enabled is not None else tuple(default_enabled),
        )

    def validate(self, catalog: Iterable[str]) -> None:
        known = set(catalog)
        unknown = [n for n in (self.disabled or ()) + (self.enabled or ()) if n not in known]
        if unknown:
            raise ConfigError(f"Unknown feature(s): {', '.join(sorted(set(unknown)))}")

    def configure_flags(self) -> List[str]:
        """``--disable-*`` for every disabled name, then ``--enable-*``."""
        flags = [f"--disable-{n}" for n in self.disabled or ()]
        flags += [f"--enable-{n}" for n in self.enabled or ()]
        return flags

    def effective_enabled(self, baseline: Iterable[str]) -> FrozenSet[str]:
        """Apply the lists to *baseline* (what configure enables by itself)."""
        result = set(baseline)
        result.difference_update(self.disabled or ())
        result.update(self.enabled or ())
        return frozenset(result)

    def expectation(self, catalog: Iterable[str]) -> FeatureExpectation:
        catalog = frozenset(catalog)
        return FeatureExpectation(
            required=frozenset(self.enabled or ()),
            forbidden=catalog - self.effective_enabled(catalog),
            exact=catalog <= frozenset(self.disabled or ()),
        )
