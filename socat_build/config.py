"""
Build configuration
"""
import sysconfig
from typing import Optional, Tuple

from pydantic_settings import BaseSettings

from socat_build.core.features import FeatureToggleSet


class Settings(BaseSettings):
    """Build settings, read from the environment (and an optional .env file).

    Optional string fields keep the difference between unset (None) and
    set-but-empty (""): for the feature lists and the link directive an
    empty value means "pass nothing", not "use the default".
    """

    # Variant
    BUILD_VARIANT: str = "custom"

    # Target pins
    SOCAT_VERSION: Optional[str] = None
    SOCAT_CHECKSUM: Optional[str] = None

    # Features (tri-state)
    SOCAT_DISABLE_FEATURES: Optional[str] = None
    SOCAT_ENABLE_FEATURES: Optional[str] = None

    # Linking (tri-state: unset ⇒ -static, "" ⇒ toolchain default)
    SOCAT_LDFLAGS: Optional[str] = None
    SOCAT_STRIP: bool = True

    # Executable suffix of the built binary (unset ⇒ the host's, ".exe" on MSYS2/Cygwin)
    SOCAT_EXE_SUFFIX: Optional[str] = None

    # Dependency pins
    NCURSES_VERSION: Optional[str] = None
    NCURSES_CHECKSUM: Optional[str] = None
    READLINE_VERSION: Optional[str] = None
    READLINE_CHECKSUM: Optional[str] = None
    OPENSSL_VERSION: Optional[str] = None
    OPENSSL_CHECKSUM: Optional[str] = None
    OPENSSL_MAJOR_VERSION: int = 3

    # Upstream overrides
    SOCAT_LISTING_URL: Optional[str] = None
    SOCAT_MANIFEST_URL: Optional[str] = None
    NCURSES_LISTING_URL: Optional[str] = None
    READLINE_LISTING_URL: Optional[str] = None
    OPENSSL_LISTING_URL: Optional[str] = None

    # Workspace (unset scratch ⇒ a fresh temporary directory per run)
    BUILD_SCRATCH_DIR: Optional[str] = None
    BUILD_OUTPUT_DIR: str = "output"
    BUILD_JOBS: Optional[int] = None

    # Network
    NETWORK_TIMEOUT: float = 30.0  # seconds

    # Reporter hand-off (set by GitHub Actions)
    GITHUB_OUTPUT: Optional[str] = None

    def feature_toggles(self) -> FeatureToggleSet:
        """Caller feature lists; unset lists stay None for the profile to fill."""
        return FeatureToggleSet.from_text(
            disabled=self.SOCAT_DISABLE_FEATURES,
            enabled=self.SOCAT_ENABLE_FEATURES,
        )

    def pins(self, package: str) -> Tuple[Optional[str], Optional[str]]:
        """(version pin, checksum pin) for *package*; empty strings count as unset."""
        prefix = package.upper()
        version = getattr(self, f"{prefix}_VERSION", None) or None
        checksum = getattr(self, f"{prefix}_CHECKSUM", None) or None
        return version, checksum

    def listing_override(self, package: str) -> Optional[str]:
        return getattr(self, f"{package.upper()}_LISTING_URL", None) or None

    def exe_suffix(self) -> str:
        if self.SOCAT_EXE_SUFFIX is not None:
            return self.SOCAT_EXE_SUFFIX
        return sysconfig.get_config_var("EXE") or ""

    class Config:
        env_file = ".env"
        case_sensitive = True
