"""Package manager abstraction.

Each supported OS vendor maps to one PackageManager implementation. The
map is built explicitly by ``build_package_managers`` and looked up with
the detected platform's vendor.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import UnsupportedPlatformError
from pgxman.core.executor import CommandExecutor, CommandResult
from pgxman.services.platform import Platform


class PackageManager(ABC):
    """Operations the installer and the reconciler need from the OS.

    Install and upgrade never raise on a non-zero exit: the caller gets the
    CommandResult back and classifies the failure itself.
    """

    def __init__(self, ctx: ExecutionContext, executor: CommandExecutor) -> None:
        self.ctx = ctx
        self.executor = executor

    @abstractmethod
    def install(self, package: str, *, sudo: bool = False, force_overwrite: bool = False) -> CommandResult:
        """Install one package (name=version or a local .deb path)."""

    @abstractmethod
    def upgrade(self, package: str, *, sudo: bool = False, force_overwrite: bool = False) -> CommandResult:
        """Upgrade (or downgrade) one package to the given name=version."""

    @abstractmethod
    def refresh_index(self, *, sudo: bool = False) -> CommandResult:
        """Refresh the package index after repositories changed."""

    def hold(self, package: str, *, sudo: bool = False) -> Optional[CommandResult]:
        """Pin a package at its installed version. None if unsupported."""
        return None

    def unhold(self, package: str, *, sudo: bool = False) -> Optional[CommandResult]:
        """Release a pin set by hold. None if unsupported."""
        return None

    @abstractmethod
    def package_name(self, name: str, version: str, pg_version: str) -> str:
        """Versioned package name for a registry extension."""

    @abstractmethod
    def is_privilege_failure(self, output: str) -> bool:
        """Whether failed output means the command needed root."""

    @abstractmethod
    def is_conflict(self, output: str) -> bool:
        """Whether failed output means a file is owned by another package."""


PackageManagerFactory = Callable[[ExecutionContext, CommandExecutor], PackageManager]


def build_package_managers() -> dict[str, PackageManagerFactory]:
    """Map OS vendor to package manager factory."""
    from pgxman.services.apt import AptPackageManager

    return {
        "debian": AptPackageManager,
        "ubuntu": AptPackageManager,
    }


def get_package_manager(
    platform: Platform,
    ctx: ExecutionContext,
    executor: CommandExecutor,
    managers: Optional[dict[str, PackageManagerFactory]] = None,
) -> PackageManager:
    """Create the package manager for a platform.

    Raises:
        UnsupportedPlatformError: If no implementation handles the vendor
    """
    managers = managers if managers is not None else build_package_managers()
    factory = managers.get(platform.vendor)
    if factory is None:
        raise UnsupportedPlatformError(platform.vendor)
    return factory(ctx, executor)
