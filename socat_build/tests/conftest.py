"""
Shared pytest fixtures for socat_build tests.

Network access is replaced by ``httpx.MockTransport`` serving an in-memory
upstream.  Builds run against tiny shell-script source trees: a fake
socat ``configure`` records its flags and generates a ``socat`` script
whose ``-V`` output mirrors the requested features, the way the real
binary reports ``#define WITH_*`` / ``#undef WITH_*``.

Requirements:
  - /bin/sh for the build and self-report tests (skipped otherwise)
"""
import hashlib
import io
import shutil
import tarfile
import textwrap
from typing import Callable, Dict, Optional

import httpx
import pytest

from socat_build.core.executor import BuildRecipe
from socat_build.policy.profile import FEATURE_CATALOG

UPSTREAM = "http://upstream.test"

# configure for the fake socat tree.  Features default to on; flags are
# applied in order so the last --enable/--disable for a name wins.
FAKE_SOCAT_CONFIGURE = textwrap.dedent("""\
    #!/bin/sh
    printf '%s\\n' "$@" > configure.args
    printf '%s' "$LDFLAGS" > ldflags.txt
    printf '%s' "$CPPFLAGS" > cppflags.txt
    {
      echo "socat by Gerhard Rieger and contributors - see www.dest-unreach.org"
      echo "socat version @VERSION@ on Jan  1 2024 00:00:00"
      echo "   running on Linux version #1 SMP, release 6.1.0, machine x86_64"
      echo "features:"
      for f in @CATALOG@; do
        on=1
        for arg in "$@"; do
          if [ "$arg" = "--disable-$f" ]; then on=0; fi
          if [ "$arg" = "--enable-$f" ]; then on=1; fi
        done
        @FORCE_OFF@
        m=$(echo "$f" | tr 'a-z-' 'A-Z_')
        if [ "$on" = 1 ]; then echo "  #define WITH_$m 1"; else echo "  #undef WITH_$m"; fi
      done
      echo "  #define WITH_MSGLEVEL 0 /*debug*/"
    } > version.txt
""")

FAKE_SOCAT_BUILD = textwrap.dedent("""\
    #!/bin/sh
    cat > @BINARY@ <<'EOS'
    #!/bin/sh
    here=$(dirname "$0")
    case "$1" in
      -V) cat "$here/version.txt" ;;
      -h) echo "socat by Gerhard Rieger and contributors - see www.dest-unreach.org"
          echo "Usage:"
          echo "socat [options] <bi-address> <bi-address>" ;;
    esac
    exit 1
    EOS
    chmod +x @BINARY@
""")

# A dependency that installs include/ and lib/ under --prefix.
FAKE_DEP_CONFIGURE = textwrap.dedent("""\
    #!/bin/sh
    for arg in "$@"; do
      case "$arg" in
        --prefix=*) printf '%s' "${arg#--prefix=}" > prefix.txt ;;
      esac
    done
    printf '%s' "$CPPFLAGS" > cppflags.txt
    printf '%s' "$LDFLAGS" > ldflags.txt
""")

FAKE_DEP_INSTALL = textwrap.dedent("""\
    #!/bin/sh
    prefix=$(cat prefix.txt)
    mkdir -p "$prefix/include" "$prefix/lib"
    touch "$prefix/lib/lib@NAME@.a" "$prefix/include/@NAME@.h"
""")

FAILING_CONFIGURE = textwrap.dedent("""\
    #!/bin/sh
    echo "checking for tgetent... no"
    echo "configure: error: termcap library not found" >&2
    exit 1
""")

FAKE_SOCAT_RECIPE = BuildRecipe(
    configure=("./configure",),
    build=("sh", "build.sh"),
    install=(),
    apply_link_directive=True,
)

FAKE_DEP_RECIPE = BuildRecipe(
    configure=("./configure", "--prefix={prefix}"),
    build=("true",),
    install=("sh", "install.sh"),
)


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_tarball(top: str, files: Dict[str, str]) -> bytes:
    """Build a .tar.gz whose members live under ``top/``; scripts are executable."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        dir_info = tarfile.TarInfo(top)
        dir_info.type = tarfile.DIRTYPE
        dir_info.mode = 0o755
        tar.addfile(dir_info)
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def fake_socat_tarball(
    version: str = "1.7.4.4",
    reported_version: Optional[str] = None,
    force_off: tuple = (),
    binary_name: str = "socat",
) -> bytes:
    """Fake socat source; *force_off* features are silently dropped like a missing library."""
    force = "; ".join(
        f'if [ "$f" = "{name}" ]; then on=0; fi' for name in force_off
    ) or ":"
    configure = (
        FAKE_SOCAT_CONFIGURE
        .replace("@VERSION@", reported_version or version)
        .replace("@CATALOG@", " ".join(FEATURE_CATALOG))
        .replace("@FORCE_OFF@", force)
    )
    return make_tarball(
        f"socat-{version}",
        {"configure": configure, "build.sh": FAKE_SOCAT_BUILD.replace("@BINARY@", binary_name)},
    )


def fake_dep_tarball(name: str, version: str, fail: bool = False) -> bytes:
    files = {
        "configure": FAILING_CONFIGURE if fail else FAKE_DEP_CONFIGURE,
        "install.sh": FAKE_DEP_INSTALL.replace("@NAME@", name),
    }
    return make_tarball(f"{name}-{version}", files)


def listing_html(names) -> str:
    rows = "\n".join(f'<a href="{n}">{n}</a>' for n in names)
    return f"<html><body><pre>\n<a href=\"../\">../</a>\n{rows}\n</pre></body></html>"


class FakeUpstream:
    """In-memory HTTP upstream: URL → bytes, with a request log."""

    def __init__(self):
        self.routes: Dict[str, bytes] = {}
        self.requests: list = []
        self.fail_with: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def add(self, url: str, body) -> None:
        self.routes[url] = body.encode() if isinstance(body, str) else body

    def add_listing(self, base: str, names) -> None:
        self.add(base, listing_html(names))

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.fail_with:
            return self.fail_with[url](request)
        if url in self.routes:
            return httpx.Response(200, content=self.routes[url])
        return httpx.Response(404, content=b"not found")

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def fetched(self, url: str) -> bool:
        return url in self.requests


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture(scope="session")
def sh_ok():
    """Skip tests that need a POSIX shell to run fake build scripts."""
    if shutil.which("sh") is None:
        pytest.skip("sh not available - build tests need a POSIX shell")


@pytest.fixture
def socat_upstream(upstream) -> FakeUpstream:
    """Upstream publishing socat 1.7.4.4 (with sidecar) and older releases."""
    base = f"{UPSTREAM}/socat/"
    data = fake_socat_tarball("1.7.4.4")
    upstream.add_listing(
        base,
        [
            "socat-1.7.3.4.tar.gz",
            "socat-1.7.4.4.tar.gz",
            "socat-1.7.4.4.tar.gz.sha256",
            "socat-2.0.0-b9.tar.gz",
        ],
    )
    upstream.add(base + "socat-1.7.4.4.tar.gz", data)
    upstream.add(base + "socat-1.7.4.4.tar.gz.sha256", sha256_bytes(data) + "\n")
    upstream.add(base + "socat-1.7.3.4.tar.gz", fake_socat_tarball("1.7.3.4"))
    return upstream
