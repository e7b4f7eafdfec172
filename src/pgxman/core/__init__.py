"""Core framework components for pgxman."""

from pgxman.core.exceptions import (
    PgxmanError,
    ConfigurationError,
    ValidationError,
    ExecutionError,
    UnsupportedPlatformError,
    PostgresNotFoundError,
    RegistryError,
    RepositoryError,
    OperationCancelledError,
    ResolutionError,
    MalformedRequestError,
    ExtensionNotFoundError,
    VersionNotFoundError,
    IncompatiblePostgresVersionError,
    IncompatiblePlatformError,
    InstallError,
    RootRequiredError,
    ConflictsWithExistingError,
    InstallFailedError,
)

from pgxman.core.context import ExecutionContext, create_context
from pgxman.core.output import console, Console, Verbosity
from pgxman.core.config import AppConfig, PgxmanConfig
from pgxman.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult, get_audit_logger
from pgxman.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "PgxmanError",
    "ConfigurationError",
    "ValidationError",
    "ExecutionError",
    "UnsupportedPlatformError",
    "PostgresNotFoundError",
    "RegistryError",
    "RepositoryError",
    "OperationCancelledError",
    "ResolutionError",
    "MalformedRequestError",
    "ExtensionNotFoundError",
    "VersionNotFoundError",
    "IncompatiblePostgresVersionError",
    "IncompatiblePlatformError",
    "InstallError",
    "RootRequiredError",
    "ConflictsWithExistingError",
    "InstallFailedError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "PgxmanConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "get_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
