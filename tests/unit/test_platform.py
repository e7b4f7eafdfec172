"""Unit tests for platform detection and package manager selection."""

from unittest.mock import MagicMock

import pytest

from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import UnsupportedPlatformError
from pgxman.services.apt import AptPackageManager
from pgxman.services.package_manager import build_package_managers, get_package_manager
from pgxman.services.platform import Platform, detect_platform, parse_os_release


def write_os_release(path, vendor: str, version: str):
    path.write_text(
        f'PRETTY_NAME="{vendor} {version}"\n'
        f"ID={vendor}\n"
        f'VERSION_ID="{version}"\n'
        "# comment\n"
    )
    return path


class TestDetectPlatform:
    """Tests for detect_platform."""

    @pytest.mark.parametrize("vendor,version,expected", [
        ("debian", "12", Platform.DEBIAN_BOOKWORM),
        ("ubuntu", "22.04", Platform.UBUNTU_JAMMY),
        ("ubuntu", "24.04", Platform.UBUNTU_NOBLE),
    ])
    def test_supported(self, tmp_path, vendor, version, expected):
        """Supported releases map to their platform."""
        path = write_os_release(tmp_path / "os-release", vendor, version)
        assert detect_platform(path, system="Linux") is expected

    def test_unsupported_release(self, tmp_path):
        """Other releases are rejected with vendor and version."""
        path = write_os_release(tmp_path / "os-release", "debian", "11")
        with pytest.raises(UnsupportedPlatformError) as exc:
            detect_platform(path, system="Linux")
        assert "debian:11" in str(exc.value)

    def test_missing_os_release(self, tmp_path):
        """Without os-release the platform is unknown."""
        with pytest.raises(UnsupportedPlatformError):
            detect_platform(tmp_path / "missing", system="Linux")

    def test_darwin(self, tmp_path):
        """macOS is detected without os-release."""
        assert detect_platform(tmp_path / "missing", system="Darwin") is Platform.DARWIN

    def test_parse_os_release(self, tmp_path):
        """Quotes are stripped and comments skipped."""
        path = write_os_release(tmp_path / "os-release", "ubuntu", "22.04")
        assert parse_os_release(path)["VERSION_ID"] == "22.04"


class TestPackageManagerSelection:
    """Tests for the vendor to package manager map."""

    def test_map(self):
        """Debian and Ubuntu use apt."""
        managers = build_package_managers()
        assert managers == {"debian": AptPackageManager, "ubuntu": AptPackageManager}

    def test_apt_for_debian(self):
        """Debian platforms get an AptPackageManager."""
        ctx = ExecutionContext(verbosity=0)
        pm = get_package_manager(Platform.DEBIAN_BOOKWORM, ctx, MagicMock())
        assert isinstance(pm, AptPackageManager)

    def test_unsupported_vendor(self):
        """No implementation for darwin."""
        with pytest.raises(UnsupportedPlatformError):
            get_package_manager(Platform.DARWIN, ExecutionContext(verbosity=0), MagicMock())

    def test_custom_map(self):
        """Callers can supply their own map."""
        factory = MagicMock()
        get_package_manager(Platform.UBUNTU_JAMMY, "ctx", "executor", managers={"ubuntu": factory})
        factory.assert_called_once_with("ctx", "executor")
