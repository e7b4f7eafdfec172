"""Install and upgrade orchestration.

Runs the package manager for each resolved extension, one target at a
time. The first failing target stops the batch; targets that already
succeeded are left installed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from pgxman.core.audit import AuditEventType, AuditLogger, get_audit_logger
from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import (
    ConflictsWithExistingError,
    InstallError,
    InstallFailedError,
    RootRequiredError,
)
from pgxman.core.executor import CommandResult
from pgxman.services.apt import AptRepositoryReconciler
from pgxman.services.locker import ResolvedExtension
from pgxman.services.package_manager import PackageManager
from pgxman.services.registry import RepositoryDescriptor


ConfirmCallback = Callable[[list[ResolvedExtension]], bool]


class InstallMode(str, Enum):
    INSTALL = "install"
    UPGRADE = "upgrade"

    @property
    def audit_event(self) -> AuditEventType:
        if self is InstallMode.UPGRADE:
            return AuditEventType.EXTENSION_UPGRADE
        return AuditEventType.EXTENSION_INSTALL


class TargetState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class InstallTarget:
    """One package manager invocation: a local file or a pinned package."""

    extension: ResolvedExtension
    package: str
    state: TargetState = TargetState.PENDING
    failure: Optional[InstallError] = None

    @property
    def is_local(self) -> bool:
        return self.extension.is_local

    @property
    def name(self) -> str:
        return self.extension.display_name

    def __str__(self) -> str:
        return self.package


def collect_repositories(resolved: Iterable[ResolvedExtension]) -> list[RepositoryDescriptor]:
    """Union of the repositories of all extensions, in first-seen order."""
    seen: set[RepositoryDescriptor] = set()
    repos: list[RepositoryDescriptor] = []
    for ext in resolved:
        for repo in ext.repositories:
            if repo not in seen:
                seen.add(repo)
                repos.append(repo)
    return repos


class ExtensionInstaller:
    """Sequences package manager calls for a resolved batch.

    Example:
        installer = ExtensionInstaller(ctx, apt, reconciler)
        targets = installer.run(resolved, InstallMode.INSTALL, sudo=True)
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        package_manager: PackageManager,
        reconciler: AptRepositoryReconciler,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.ctx = ctx
        self.package_manager = package_manager
        self.reconciler = reconciler
        self.audit = audit or get_audit_logger()

    def build_targets(self, resolved: list[ResolvedExtension]) -> list[InstallTarget]:
        targets = []
        for ext in resolved:
            if ext.is_local:
                package = str(ext.path.resolve())
            else:
                package = self.package_manager.package_name(ext.name, ext.version, ext.pg_version)
            targets.append(InstallTarget(extension=ext, package=package))
        return targets

    def run(
        self,
        resolved: list[ResolvedExtension],
        mode: InstallMode,
        sudo: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> list[InstallTarget]:
        """Install or upgrade every resolved extension.

        Args:
            resolved: Output of the locker
            mode: Install or upgrade
            sudo: Prefix package manager commands with sudo
            confirm: Called with the batch before anything changes. None
                means the batch is pre-authorized.

        Returns:
            The targets, all SUCCEEDED. Empty if the user declined.

        Raises:
            RepositoryError: If repository setup fails (nothing installed)
            RootRequiredError: If the package manager needs root
            ConflictsWithExistingError: If a package collides with one not
                managed by pgxman and overwrite is not set
            InstallFailedError: For any other package manager failure
            OperationCancelledError: If cancelled before confirmation or between targets
        """
        targets = self.build_targets(resolved)
        if not targets:
            return []

        self.ctx.check_cancelled(mode.value.capitalize())
        if confirm is not None and not confirm(resolved):
            self.ctx.console.debug("Installation declined")
            return []

        self.reconciler.reconcile(collect_repositories(resolved), sudo=sudo)

        for target in targets:
            self.ctx.check_cancelled(f"{mode.value.capitalize()} of {target.name}")
            target.state = TargetState.CONFIRMED
            try:
                self._run_target(target, mode, sudo)
            except InstallError as e:
                target.state = TargetState.FAILED
                target.failure = e
                self.audit.log_failure(mode.audit_event, "extension", target.name, e.message)
                raise

        return targets

    def _run_target(self, target: InstallTarget, mode: InstallMode, sudo: bool) -> None:
        target.state = TargetState.EXECUTING
        self.ctx.console.step(f"{'Upgrading' if mode is InstallMode.UPGRADE else 'Installing'} {target}")

        if not target.is_local:
            self._unhold(target, sudo)

        result = self._invoke(target, mode, sudo, force_overwrite=False)
        if not result.success:
            if self.package_manager.is_conflict(result.output) and target.extension.overwrite:
                self.ctx.console.verbose(f"Overwriting files of existing package for {target.name}")
                result = self._invoke(target, mode, sudo, force_overwrite=True)
            if not result.success:
                raise self._classify(target, mode, result)

        if not target.is_local:
            self._hold(target, sudo)

        target.state = TargetState.SUCCEEDED
        if self.ctx.dry_run:
            self.audit.log_dry_run(mode.audit_event, "extension", target.name, target.package)
        else:
            self.audit.log_success(
                mode.audit_event,
                "extension",
                target.name,
                parameters={
                    "package": target.package,
                    "pg_version": target.extension.pg_version,
                    "overwrite": target.extension.overwrite,
                },
            )

    def _invoke(
        self,
        target: InstallTarget,
        mode: InstallMode,
        sudo: bool,
        force_overwrite: bool,
    ) -> CommandResult:
        if mode is InstallMode.UPGRADE:
            return self.package_manager.upgrade(target.package, sudo=sudo, force_overwrite=force_overwrite)
        return self.package_manager.install(target.package, sudo=sudo, force_overwrite=force_overwrite)

    def _classify(self, target: InstallTarget, mode: InstallMode, result: CommandResult) -> InstallError:
        output = result.output
        if self.package_manager.is_privilege_failure(output):
            return RootRequiredError(target.name)
        if self.package_manager.is_conflict(output):
            return ConflictsWithExistingError(target.name)
        return InstallFailedError(
            target.name,
            action=mode.value,
            return_code=result.return_code,
            output=output,
        )

    def _unhold(self, target: InstallTarget, sudo: bool) -> None:
        result = self.package_manager.unhold(target.package, sudo=sudo)
        if result is None or result.success:
            return
        if self.package_manager.is_privilege_failure(result.output):
            raise RootRequiredError(target.name)
        # Not installed yet, nothing to release
        self.ctx.console.debug(f"Unhold of {target.package} failed: {result.output.strip()}")

    def _hold(self, target: InstallTarget, sudo: bool) -> None:
        result = self.package_manager.hold(target.package, sudo=sudo)
        if result is not None and not result.success:
            self.ctx.console.warn(f"Could not hold {target.package} at its installed version")
