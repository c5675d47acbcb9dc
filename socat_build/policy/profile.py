"""
Profile — build variants, upstream sources and feature policy.

The profile holds every opinion (feature catalog, minimal defaults,
upstream locations, dependency recipes) so that core/ stays generic.
Adding a variant or moving an upstream is a profile change, not a code
change.

Variants:
  custom    socat only, every feature disabled first, then ``ip4`` and
            ``help`` enabled unless the caller says otherwise.
  standard  ncurses → readline → OpenSSL → socat, with configure's own
            feature defaults; readline and OpenSSL must end up compiled in.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from socat_build.core.errors import ConfigError
from socat_build.core.executor import BuildRecipe
from socat_build.core.graph import DependencyNode
from socat_build.core.resolver import DEFAULT_EXTENSION, DEFAULT_VERSION_PATTERN

# socat configure --disable-*/--enable-* names
FEATURE_CATALOG: Tuple[str, ...] = (
    "help", "stdio", "fdnum", "file", "creat", "gopen", "pipe", "termios",
    "unix", "abstract-unix", "ip4", "ip6", "rawip", "genericsocket",
    "interface", "tcp", "udp", "sctp", "vsock", "listen", "socks4",
    "socks4a", "proxy", "exec", "system", "pty", "ext2", "readline",
    "openssl", "fips", "tun", "sycls", "filan", "retry", "libwrap",
)

# ip4: socat does not build without it.  help: ``socat -h`` for convenience.
MINIMAL_FEATURES: Tuple[str, ...] = ("ip4", "help")

SOCAT_VERSION_REPORT = r"socat version (\S+)"


@dataclass(frozen=True)
class Upstream:
    """Where one package is published and how its archives are named."""

    name: str
    listing_url: str
    checksum_suffix: Optional[str] = None
    manifest_url: Optional[str] = None
    version_pattern: str = DEFAULT_VERSION_PATTERN
    extension: str = DEFAULT_EXTENSION


SOCAT_UPSTREAM = Upstream(
    name="socat",
    listing_url="http://www.dest-unreach.org/socat/download/",
    checksum_suffix=".sha256",
    version_pattern=r"\d+\.\d+\.\d+\.\d+",
)

NCURSES_UPSTREAM = Upstream(
    name="ncurses",
    listing_url="https://ftp.gnu.org/gnu/ncurses/",
    version_pattern=r"\d+\.\d+",
)

READLINE_UPSTREAM = Upstream(
    name="readline",
    listing_url="https://ftp.gnu.org/gnu/readline/",
    version_pattern=r"\d+\.\d+",
)

OPENSSL_UPSTREAMS: Dict[int, Upstream] = {
    1: Upstream(
        name="openssl",
        listing_url="https://www.openssl.org/source/old/1.1.1/",
        checksum_suffix=".sha256",
        version_pattern=r"1\.\d+\.\d+[a-z]?",
    ),
    3: Upstream(
        name="openssl",
        listing_url="https://www.openssl.org/source/",
        checksum_suffix=".sha256",
        version_pattern=r"3\.\d+\.\d+",
    ),
}

NCURSES_RECIPE = BuildRecipe(
    configure=(
        "./configure", "--prefix={prefix}",
        "--without-shared", "--without-debug", "--without-ada",
        "--without-cxx", "--without-cxx-binding", "--without-manpages",
        "--without-progs", "--without-tests", "--disable-widec",
    ),
)

READLINE_RECIPE = BuildRecipe(
    configure=(
        "./configure", "--prefix={prefix}",
        "--disable-shared", "--enable-static", "--with-curses",
    ),
)

# --libdir=lib keeps the install layout at <prefix>/lib on 64-bit hosts.
OPENSSL_RECIPE = BuildRecipe(
    configure=(
        "./config", "--prefix={prefix}", "--openssldir={prefix}/ssl",
        "--libdir=lib", "no-shared", "no-tests",
    ),
    install=("make", "install_sw"),
)

SOCAT_RECIPE = BuildRecipe(
    configure=("./configure",),
    install=(),
    apply_link_directive=True,
)


@dataclass(frozen=True)
class BuildProfile:
    """Everything one variant needs to know besides caller pins."""

    profile_id: str
    variant: str
    target: Upstream
    target_recipe: BuildRecipe
    binary_name: str = "socat"
    dependencies: Tuple[DependencyNode, ...] = ()
    dependency_upstreams: Dict[str, Upstream] = field(default_factory=dict)
    feature_catalog: Tuple[str, ...] = FEATURE_CATALOG
    default_disabled: Tuple[str, ...] = ()
    default_enabled: Tuple[str, ...] = ()
    version_report_pattern: str = SOCAT_VERSION_REPORT

    @classmethod
    def custom(cls, target: Upstream = SOCAT_UPSTREAM) -> "BuildProfile":
        """Target only; minimal feature set unless the caller overrides it."""
        return cls(
            profile_id="socat-custom-static",
            variant="custom",
            target=target,
            target_recipe=SOCAT_RECIPE,
            default_disabled=FEATURE_CATALOG,
            default_enabled=MINIMAL_FEATURES,
        )

    @classmethod
    def standard(
        cls,
        openssl_major: int = 3,
        target: Upstream = SOCAT_UPSTREAM,
        ncurses: Upstream = NCURSES_UPSTREAM,
        readline: Upstream = READLINE_UPSTREAM,
        openssl: Optional[Upstream] = None,
    ) -> "BuildProfile":
        """ncurses, readline and OpenSSL built first; configure's own feature defaults."""
        if openssl is None:
            if openssl_major not in OPENSSL_UPSTREAMS:
                raise ConfigError(
                    f"Unsupported OpenSSL major version {openssl_major}; "
                    f"expected one of {sorted(OPENSSL_UPSTREAMS)}"
                )
            openssl = OPENSSL_UPSTREAMS[openssl_major]
        return cls(
            profile_id=f"socat-standard-openssl{openssl_major}-static",
            variant="standard",
            target=target,
            target_recipe=SOCAT_RECIPE,
            dependencies=(
                DependencyNode(name="ncurses", recipe=NCURSES_RECIPE),
                DependencyNode(
                    name="readline",
                    recipe=READLINE_RECIPE,
                    requires=("ncurses",),
                    feature="readline",
                ),
                DependencyNode(name="openssl", recipe=OPENSSL_RECIPE, feature="openssl"),
            ),
            dependency_upstreams={
                "ncurses": ncurses,
                "readline": readline,
                "openssl": openssl,
            },
        )

    def with_upstream(self, name: str, **changes) -> "BuildProfile":
        """Return a copy with one upstream's fields replaced."""
        if name == self.target.name:
            return replace(self, target=replace(self.target, **changes))
        if name not in self.dependency_upstreams:
            raise ConfigError(f"Profile {self.profile_id} has no upstream named {name}")
        upstreams = dict(self.dependency_upstreams)
        upstreams[name] = replace(upstreams[name], **changes)
        return replace(self, dependency_upstreams=upstreams)

    def with_exe_suffix(self, suffix: str) -> "BuildProfile":
        """Copy whose build produces ``<binary_name><suffix>`` (``socat.exe`` under MSYS2)."""
        if not suffix or self.binary_name.endswith(suffix):
            return self
        return replace(self, binary_name=self.binary_name + suffix)
