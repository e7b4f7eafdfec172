"""Bundle command.

Installs every extension declared in a pgxman.yaml. Extensions are
installed in upgrade mode so that re-running a bundle after editing a
version moves the host to it.
"""

from typing import Optional, TextIO

from pgxman.commands.install import Pipeline, install_requests, report_results
from pgxman.core import ExecutionContext
from pgxman.services.bundle import load_bundle
from pgxman.services.installer import InstallMode, InstallTarget
from pgxman.services.postgres import require_pg_version


def run_bundle(
    ctx: ExecutionContext,
    file: str,
    overwrite: bool = False,
    sudo: bool = False,
    skip_pg_check: bool = False,
    stdin: Optional[TextIO] = None,
    pipeline: Optional[Pipeline] = None,
) -> list[InstallTarget]:
    """Install a bundle file ("-" for stdin).

    Raises:
        ConfigurationError: If the bundle cannot be read or is invalid
        PostgresNotFoundError: If the bundle's PostgreSQL is not installed
    """
    bundle, base_dir = load_bundle(file, stdin=stdin)
    requests = bundle.to_requests(base_dir, overwrite=overwrite)

    if not requests:
        ctx.console.info("Bundle declares no extensions")
        return []

    if not skip_pg_check and not ctx.dry_run:
        require_pg_version(bundle.pg_version)

    ctx.console.verbose(
        f"Installing {len(requests)} extension(s) for PostgreSQL {bundle.pg_version}"
    )
    targets = install_requests(ctx, requests, InstallMode.UPGRADE, sudo=sudo, pipeline=pipeline)

    if not targets:
        ctx.console.warn("Operation cancelled")
        return targets

    report_results(ctx, targets, InstallMode.UPGRADE)
    return targets
