"""Install and upgrade commands.

Commands:
- pgxman install EXT...
- pgxman upgrade EXT...

Both run the same pipeline: parse the arguments, lock them against the
registry, add missing apt repositories, then run apt for each extension.
"""

from dataclasses import dataclass
from typing import Optional

from pgxman.core import (
    CommandExecutor,
    ExecutionContext,
    get_audit_logger,
)
from pgxman.core.validation import validate_pg_version
from pgxman.services.apt import AptRepositoryReconciler
from pgxman.services.extension_request import ExtensionRequest, parse_requests
from pgxman.services.installer import ConfirmCallback, ExtensionInstaller, InstallMode, InstallTarget
from pgxman.services.locker import ExtensionLocker, ResolvedExtension
from pgxman.services.package_manager import PackageManager, get_package_manager
from pgxman.services.platform import detect_platform
from pgxman.services.postgres import detect_pg_version, require_pg_version
from pgxman.services.registry import RegistryClient


@dataclass
class Pipeline:
    """Services wired from the context's configuration."""
    locker: ExtensionLocker
    package_manager: PackageManager
    reconciler: AptRepositoryReconciler
    installer: ExtensionInstaller


def build_pipeline(ctx: ExecutionContext) -> Pipeline:
    """Create the services for one run.

    Raises:
        UnsupportedPlatformError: If the host has no package manager support
    """
    config = ctx.config
    client = RegistryClient(
        config.registry.url,
        token=config.secrets.registry_token,
        timeout=config.registry.timeout,
    )
    platform = detect_platform()
    executor = CommandExecutor(ctx)
    package_manager = get_package_manager(platform, ctx, executor)
    audit = get_audit_logger()
    reconciler = AptRepositoryReconciler(
        ctx,
        executor,
        package_manager,
        sources_dir=config.apt.sources_dir,
        keyrings_dir=config.apt.keyrings_dir,
        session=client.session,
        audit=audit,
    )
    return Pipeline(
        locker=ExtensionLocker(
            client,
            lambda: platform,
            workers=config.install.resolve_workers,
            ctx=ctx,
        ),
        package_manager=package_manager,
        reconciler=reconciler,
        installer=ExtensionInstaller(ctx, package_manager, reconciler, audit=audit),
    )


def default_pg_version(ctx: ExecutionContext) -> str:
    """Installed PGDG version if one is detected, else the configured default."""
    detected = detect_pg_version()
    if detected:
        ctx.console.debug(f"Detected PostgreSQL {detected}")
        return detected
    return ctx.config.postgres.default_version


def confirm_batch(
    ctx: ExecutionContext,
    pipeline: Pipeline,
    mode: InstallMode,
) -> Optional[ConfirmCallback]:
    """Build the confirmation callback, or None under --yes or --dry-run."""
    if not ctx.should_confirm:
        return None

    def confirm(resolved: list[ResolvedExtension]) -> bool:
        targets = pipeline.installer.build_targets(resolved)
        action = "upgraded" if mode is InstallMode.UPGRADE else "installed"

        ctx.console.listing(
            f"The following Debian packages will be {action}:",
            [target.package for target in targets],
        )

        sources = pipeline.reconciler.plan(
            repo for ext in resolved for repo in ext.repositories
        )
        if sources:
            ctx.console.listing(
                "The following Apt repositories will be added or updated:",
                [source.name for source in sources],
            )

        return ctx.console.confirm("Do you want to continue?", default=True)

    return confirm


def install_requests(
    ctx: ExecutionContext,
    requests: list[ExtensionRequest],
    mode: InstallMode,
    sudo: bool = False,
    pipeline: Optional[Pipeline] = None,
) -> list[InstallTarget]:
    """Lock and install a batch of parsed requests.

    Returns:
        Installed targets, empty if the user declined
    """
    pipeline = pipeline or build_pipeline(ctx)
    audit = get_audit_logger()

    with audit.correlation(mode.value):
        with ctx.console.status("Resolving extensions..."):
            resolved = pipeline.locker.lock(requests)
        return pipeline.installer.run(
            resolved,
            mode,
            sudo=sudo,
            confirm=confirm_batch(ctx, pipeline, mode),
        )


def report_results(ctx: ExecutionContext, targets: list[InstallTarget], mode: InstallMode) -> None:
    """Print one line per extension, and the ALTER EXTENSION reminder after upgrades."""
    for target in targets:
        ctx.console.result(target.name)

    names = [t.extension.name for t in targets if not t.is_local]
    if mode is InstallMode.UPGRADE and names:
        ctx.console.print()
        ctx.console.print(
            "After restarting PostgreSQL, update extensions in each database "
            "by running in the psql shell:"
        )
        ctx.console.print()
        for name in names:
            ctx.console.print(f"    ALTER EXTENSION {name} UPDATE;")


def run_install(
    ctx: ExecutionContext,
    args: list[str],
    mode: InstallMode,
    pg_version: Optional[str] = None,
    overwrite: bool = False,
    sudo: bool = False,
    skip_pg_check: bool = False,
    pipeline: Optional[Pipeline] = None,
) -> list[InstallTarget]:
    """Run install or upgrade for command-line arguments.

    Raises:
        PgxmanError: Any pipeline failure, unchanged
    """
    pg_version = validate_pg_version(pg_version) if pg_version else default_pg_version(ctx)
    requests = parse_requests(args, pg_version=pg_version, overwrite=overwrite)
    if not skip_pg_check and not ctx.dry_run:
        require_pg_version(pg_version)

    targets = install_requests(ctx, requests, mode, sudo=sudo, pipeline=pipeline)

    if not targets:
        ctx.console.warn("Operation cancelled")
        return targets

    report_results(ctx, targets, mode)
    return targets
