"""Services behind the pgxman pipeline: parse, lock, reconcile, install."""

from pgxman.services.extension_request import ExtensionRequest, parse_request, parse_requests
from pgxman.services.locker import ExtensionLocker, ResolvedExtension
from pgxman.services.apt import AptPackageManager, AptRepositoryReconciler
from pgxman.services.installer import ExtensionInstaller, InstallMode, InstallTarget, TargetState

__all__ = [
    "ExtensionRequest",
    "parse_request",
    "parse_requests",
    "ExtensionLocker",
    "ResolvedExtension",
    "AptPackageManager",
    "AptRepositoryReconciler",
    "ExtensionInstaller",
    "InstallMode",
    "InstallTarget",
    "TargetState",
]
