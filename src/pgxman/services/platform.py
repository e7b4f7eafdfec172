"""Host platform detection.

The platform identifier is only ever used as a lookup key: the registry
publishes one build per platform, and the vendor half selects the
package manager implementation.
"""

import platform as _platform
from enum import Enum
from pathlib import Path
from typing import Optional

from pgxman.core.exceptions import UnsupportedPlatformError


OS_RELEASE_PATH = Path("/etc/os-release")


class Platform(str, Enum):
    """Platforms extensions are published for."""
    DEBIAN_BOOKWORM = "debian_bookworm"
    UBUNTU_JAMMY = "ubuntu_jammy"
    UBUNTU_NOBLE = "ubuntu_noble"
    DARWIN = "darwin"

    @property
    def vendor(self) -> str:
        """OS vendor (debian, ubuntu, darwin)."""
        return self.value.split("_", 1)[0]

    def __str__(self) -> str:
        return self.value


# (vendor, VERSION_ID) -> platform
_RELEASES: dict[tuple[str, str], Platform] = {
    ("debian", "12"): Platform.DEBIAN_BOOKWORM,
    ("ubuntu", "22.04"): Platform.UBUNTU_JAMMY,
    ("ubuntu", "24.04"): Platform.UBUNTU_NOBLE,
}


def parse_os_release(path: Path = OS_RELEASE_PATH) -> Optional[dict[str, str]]:
    """Parse an os-release file into a dict, or None if it is missing."""
    try:
        with open(path) as f:
            result = {}
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                result[key] = value.strip('"').strip("'")
            return result
    except FileNotFoundError:
        return None


def detect_platform(
    os_release_path: Path = OS_RELEASE_PATH,
    system: Optional[str] = None,
) -> Platform:
    """Detect the host platform.

    Args:
        os_release_path: os-release file to read on Linux
        system: Override for platform.system(), used by tests

    Returns:
        The detected Platform

    Raises:
        UnsupportedPlatformError: If the host is not a supported platform
    """
    system = (system or _platform.system()).lower()
    if system == "darwin":
        return Platform.DARWIN

    os_release = parse_os_release(os_release_path)
    if os_release is None:
        raise UnsupportedPlatformError(system)

    vendor = os_release.get("ID", "").lower()
    version = os_release.get("VERSION_ID", "")

    detected = _RELEASES.get((vendor, version))
    if detected is None:
        raise UnsupportedPlatformError(vendor or system, version)
    return detected
