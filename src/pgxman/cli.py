"""Main CLI entry point using Typer.

This module defines the root CLI application, its commands and the
options they share.
"""

import signal
from pathlib import Path
from typing import Annotated, Callable, Optional, TypeVar

import typer
from rich.console import Console

from pgxman import __version__
from pgxman.core.context import ExecutionContext, create_context
from pgxman.core.output import console as app_console
from pgxman.core.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    get_example_config,
    init_config,
)
from pgxman.core.exceptions import InstallFailedError, OperationCancelledError, PgxmanError
from pgxman.services.bundle import DEFAULT_BUNDLE_FILE
from pgxman.services.installer import InstallMode


T = TypeVar("T")

# Create the main Typer app
app = typer.Typer(
    name="pgxman",
    help="pgxman - PostgreSQL extension manager.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")


# Type aliases for common options
DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview changes without executing. Shows what would happen.",
        is_flag=True,
    ),
]

YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Skip confirmation prompts.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]

PgOption = Annotated[
    Optional[str],
    typer.Option(
        "--pg",
        help="PostgreSQL major version. Default: the installed PGDG version.",
    ),
]

OverwriteOption = Annotated[
    bool,
    typer.Option(
        "--overwrite",
        help="Overwrite files of packages installed outside of pgxman.",
        is_flag=True,
    ),
]

SudoOption = Annotated[
    bool,
    typer.Option(
        "--sudo",
        help="Run apt and write repository files with sudo.",
        is_flag=True,
    ),
]

SkipPgCheckOption = Annotated[
    bool,
    typer.Option(
        "--skip-pg-check",
        help="Do not check that the target PostgreSQL version is installed.",
        is_flag=True,
    ),
]

ExtensionsArgument = Annotated[
    list[str],
    typer.Argument(
        help="Extensions as NAME[=VERSION], or paths to local .deb files.",
        show_default=False,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"pgxman version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """pgxman - PostgreSQL extension manager.

    Installs PostgreSQL extensions from the pgxman registry with apt,
    adding the apt repositories they need.

    [bold]Examples:[/bold]
        pgxman install pgvector
        pgxman install pgvector=0.5.1 --pg 16
        pgxman upgrade pgvector
        pgxman bundle -f pgxman.yaml
        pgxman config show
    """
    pass


def get_context(
    dry_run: bool = False,
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Create execution context from CLI options."""
    return create_context(
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )


def handle_error(error: PgxmanError, ctx: Optional[ExecutionContext] = None) -> None:
    """Handle a PgxmanError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print(f"  [dim]{detail}[/dim]")

    if isinstance(error, InstallFailedError) and ctx is not None and ctx.is_debug:
        for line in error.output.strip().splitlines():
            app_console.output_line(f"  {line}")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def run_cancellable(ctx: ExecutionContext, operation: Callable[[], T]) -> T:
    """Run an operation with SIGTERM and Ctrl+C wired to ctx.cancel()."""

    def on_sigterm(signum: int, frame: object) -> None:
        ctx.cancel()

    previous = signal.signal(signal.SIGTERM, on_sigterm)
    try:
        return operation()
    except KeyboardInterrupt:
        ctx.cancel()
        handle_error(OperationCancelledError("Interrupted"), ctx)
    except PgxmanError as e:
        handle_error(e, ctx)
    finally:
        signal.signal(signal.SIGTERM, previous)


# ============================================================================
# Install commands
# ============================================================================

def _install(
    mode: InstallMode,
    extensions: list[str],
    pg: Optional[str],
    overwrite: bool,
    sudo: bool,
    skip_pg_check: bool,
    dry_run: bool,
    yes: bool,
    verbose: int,
    quiet: bool,
    config: Optional[Path],
    no_color: bool,
) -> None:
    from pgxman.commands.install import run_install

    ctx = get_context(
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )
    run_cancellable(ctx, lambda: run_install(
        ctx,
        extensions,
        mode,
        pg_version=pg,
        overwrite=overwrite,
        sudo=sudo,
        skip_pg_check=skip_pg_check,
    ))


@app.command("install")
def install_cmd(
    extensions: ExtensionsArgument,
    pg: PgOption = None,
    overwrite: OverwriteOption = False,
    sudo: SudoOption = False,
    skip_pg_check: SkipPgCheckOption = False,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Install PostgreSQL extensions.

    Resolves each extension against the registry, adds the apt
    repositories it needs and installs it with apt.

    [bold]Examples:[/bold]

        # Latest pgvector for the installed PostgreSQL
        sudo pgxman install pgvector

        # Pinned versions for PostgreSQL 15
        pgxman install pgvector=0.5.1 pg_ivm=1.7.0 --pg 15 --sudo

        # A local package
        sudo pgxman install ./postgresql-16-pgxman-hello_1.0.0_amd64.deb
    """
    _install(InstallMode.INSTALL, extensions, pg, overwrite, sudo, skip_pg_check,
             dry_run, yes, verbose, quiet, config, no_color)


@app.command("upgrade")
def upgrade_cmd(
    extensions: ExtensionsArgument,
    pg: PgOption = None,
    overwrite: OverwriteOption = False,
    sudo: SudoOption = False,
    skip_pg_check: SkipPgCheckOption = False,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Upgrade PostgreSQL extensions.

    Moves each extension to the latest (or the given) version. Downgrades
    are allowed when an older version is pinned.

    [bold]Examples:[/bold]

        sudo pgxman upgrade pgvector

        pgxman upgrade pgvector=0.6.0 --sudo
    """
    _install(InstallMode.UPGRADE, extensions, pg, overwrite, sudo, skip_pg_check,
             dry_run, yes, verbose, quiet, config, no_color)


@app.command("bundle")
def bundle_cmd(
    file: Annotated[
        str,
        typer.Option(
            "--file",
            "-f",
            help="Bundle file, or - to read from stdin.",
        ),
    ] = f"./{DEFAULT_BUNDLE_FILE}",
    overwrite: OverwriteOption = False,
    sudo: SudoOption = False,
    skip_pg_check: SkipPgCheckOption = False,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Install the extensions declared in a bundle file.

    [bold]Bundle format:[/bold]

        apiVersion: v1
        extensions:
          - name: pgvector
            version: "0.5.1"
          - path: ./postgresql-16-pgxman-hello_1.0.0_amd64.deb
        postgres:
          version: "16"

    [bold]Examples:[/bold]

        sudo pgxman bundle

        cat pgxman.yaml | pgxman bundle -f - --sudo -y
    """
    from pgxman.commands.bundle import run_bundle

    ctx = get_context(
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )
    run_cancellable(ctx, lambda: run_bundle(
        ctx,
        file,
        overwrite=overwrite,
        sudo=sudo,
        skip_pg_check=skip_pg_check,
    ))


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show current configuration.

    Displays the loaded configuration from the config file.
    Secrets are not shown.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        ctx.console.summary("Secrets (from environment)", {
            "PGXMAN_REGISTRY_TOKEN": "Set" if app_config.secrets.registry_token else "Not set",
        })

    except PgxmanError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite an existing configuration file.",
            is_flag=True,
        ),
    ] = False,
    no_color: NoColorOption = False,
) -> None:
    """Initialize a new configuration file.

    Creates a configuration file with defaults and comments.
    """
    ctx = get_context(no_color=no_color, config=config)
    config_path = ctx.config_path

    try:
        init_config(config_path, force=force)
        ctx.console.success(f"Configuration file created: {config_path}")
        ctx.console.info("Edit the file to customize settings, then run commands.")
        ctx.console.hint("Set the registry token via PGXMAN_REGISTRY_TOKEN if needed")

    except PgxmanError as e:
        handle_error(e)
    except OSError as e:
        app_console.error(f"Cannot write configuration file: {e}")
        app_console.hint("Check permissions or run with sudo")
        raise typer.Exit(2)


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Validate configuration file.

    Checks that the configuration file exists, is valid YAML,
    and all values pass validation.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        if not ctx.config_path.exists():
            ctx.console.warn(f"Configuration file not found, defaults apply: {ctx.config_path}")
            return

        app_config = AppConfig(config_path=ctx.config_path)

        ctx.console.success(f"Configuration is valid: {ctx.config_path}")

        if ctx.is_verbose:
            ctx.console.yaml(app_config.config.to_yaml())

    except PgxmanError as e:
        handle_error(e)


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print example configuration file.

    Outputs a complete example configuration with comments.
    """
    ctx = get_context(no_color=no_color)
    example = get_example_config()
    ctx.console.print(example, markup=False)


if __name__ == "__main__":
    app()
