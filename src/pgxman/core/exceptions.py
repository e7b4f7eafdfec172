"""Custom exceptions for pgxman.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from typing import Optional


class PgxmanError(Exception):
    """Base exception for all pgxman errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PgxmanError):
    """Configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    - Invalid bundle file
    """
    exit_code = 2


class ValidationError(PgxmanError):
    """Input validation errors.

    Raised when:
    - Unsupported PostgreSQL version
    - Invalid URLs
    - Invalid repository descriptors
    """
    exit_code = 3


class ExecutionError(PgxmanError):
    """Command execution failures.

    Raised when:
    - Shell command returns non-zero exit code
    - Command cannot be started
    - Command times out
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class UnsupportedPlatformError(PgxmanError):
    """The host operating system is not supported."""
    exit_code = 6

    def __init__(self, vendor: str, version: str = "") -> None:
        platform = f"{vendor}:{version}" if version else vendor
        super().__init__(
            f"Unsupported platform: {platform}",
            hint="Supported platforms are Debian bookworm, Ubuntu jammy and Ubuntu noble",
        )
        self.vendor = vendor
        self.version = version


class PostgresNotFoundError(PgxmanError):
    """The target PostgreSQL version is not installed on the host."""
    exit_code = 6

    def __init__(self, pg_version: Optional[str] = None) -> None:
        message = "Could not detect an installation of Postgres"
        if pg_version:
            message = f"Could not detect an installation of Postgres {pg_version}"
        super().__init__(
            message,
            hint="For information on installing Postgres, see: https://docs.pgxman.com/installing_postgres",
        )
        self.pg_version = pg_version


class RegistryError(PgxmanError):
    """Registry communication failures.

    Raised when:
    - Registry is unreachable or times out
    - Registry returns an unexpected status
    - Registry response cannot be parsed
    """
    exit_code = 8


class RepositoryError(PgxmanError):
    """Apt repository reconciliation failures.

    Raised when:
    - Signing key download fails
    - Source or key file cannot be written
    - Package index refresh fails
    """
    exit_code = 9


class OperationCancelledError(PgxmanError):
    """The operation was cancelled before it could complete."""
    exit_code = 130


# Resolution errors

class ResolutionError(PgxmanError):
    """Base class for errors raised while resolving extension requests."""
    exit_code = 3


class MalformedRequestError(ResolutionError):
    """An extension argument does not follow the NAME[=VERSION] format."""

    def __init__(self, arg: str) -> None:
        super().__init__(
            f"Invalid extension format: {arg!r}",
            hint="The format is NAME[=VERSION] or a path to a local package file",
        )
        self.arg = arg


class ExtensionNotFoundError(ResolutionError):
    """The registry has no extension with the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Extension {name!r} not found",
            hint="Check the extension name at https://pgx.sh",
        )
        self.name = name


class VersionNotFoundError(ResolutionError):
    """The extension exists but the requested version does not."""

    def __init__(self, name: str, version: str) -> None:
        super().__init__(
            f"Version {version!r} of extension {name!r} not found",
            hint=f"Omit the version to install the latest {name}",
        )
        self.name = name
        self.version = version


class IncompatiblePostgresVersionError(ResolutionError):
    """The extension has no package for the target PostgreSQL version."""

    def __init__(self, name: str, pg_version: str) -> None:
        super().__init__(
            f"{name} is incompatible with PostgreSQL {pg_version}",
            hint="Choose a different PostgreSQL version with --pg",
        )
        self.name = name
        self.pg_version = pg_version


class IncompatiblePlatformError(ResolutionError):
    """The extension package has no build for the detected platform."""

    def __init__(self, name: str, version: str, platform: str) -> None:
        super().__init__(f"{name} {version} is incompatible with {platform}")
        self.name = name
        self.version = version
        self.platform = platform


# Orchestration errors

class InstallError(PgxmanError):
    """Base class for errors raised while running the package manager."""
    exit_code = 5


class RootRequiredError(InstallError):
    """The package manager needs root privileges."""

    def __init__(self, target: Optional[str] = None) -> None:
        super().__init__(
            "Must run command as root",
            hint="Re-run with --sudo or prefix the command with sudo",
        )
        self.target = target


class ConflictsWithExistingError(InstallError):
    """The package collides with files owned by a package installed outside pgxman."""

    def __init__(self, target: Optional[str] = None) -> None:
        super().__init__(
            f"{target or 'Extension'} has already been installed (outside of pgxman)",
            hint="Use --overwrite to replace the existing installation",
        )
        self.target = target


class InstallFailedError(InstallError):
    """Any other package-manager failure."""

    def __init__(
        self,
        target: str,
        *,
        action: str = "install",
        return_code: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(
            f"Failed to {action} {target}",
            hint="Run with -vv to see the full package manager output",
        )
        self.target = target
        self.action = action
        self.return_code = return_code
        self.output = output
