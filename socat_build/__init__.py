"""
socat_build — reproducible static socat builds.

Resolve socat and its native dependencies from upstream, verify archive
checksums, build with a chosen feature set, and verify the resulting
binary's self-report before handing a build report to the publisher.
"""

__version__ = "0.1.0"
BUILDER_NAME = "socat_build"
BUILDER_VERSION = "v1"
SCHEMA_VERSION = "0.1"
