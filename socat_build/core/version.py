"""
Version — structured upstream release versions.

A version is 2–4 non-negative integer components with an optional
trailing lowercase letter (OpenSSL 1.x style, e.g. ``1.1.1w``).
Ordering is component-wise and numeric; a trailing letter sorts after
the bare version.  Pure module, no IO.
"""
from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Optional, Tuple

MAX_COMPONENTS = 4

VERSION_RE = re.compile(r"^(?P<nums>\d+(?:\.\d+){1,3})(?P<letter>[a-z])?$")


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """An ordered release version."""

    components: Tuple[int, ...]
    letter: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse ``text``; raises ValueError when it is not a release version."""
        m = VERSION_RE.match(text.strip())
        if m is None:
            raise ValueError(f"Not a release version: {text!r}")
        comps = tuple(int(c) for c in m.group("nums").split("."))
        return cls(components=comps, letter=m.group("letter"))

    @property
    def sort_key(self) -> Tuple[Tuple[int, ...], str]:
        padded = self.components + (0,) * (MAX_COMPONENTS - len(self.components))
        return padded, self.letter or ""

    @property
    def major(self) -> int:
        return self.components[0]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key == other.sort_key

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __str__(self) -> str:
        return ".".join(str(c) for c in self.components) + (self.letter or "")
