"""Input validation utilities.

Provides validation for:
- PostgreSQL major versions
- Registry and signing-key URLs
- Host directory paths
- Apt repository identifiers and key formats

All validators return the validated value or raise ValidationError.
"""

import re
from typing import Optional, Sequence
from urllib.parse import urlparse

from pgxman.core.exceptions import ValidationError


SUPPORTED_PG_VERSIONS: tuple[str, ...] = ("13", "14", "15", "16", "17")
DEFAULT_PG_VERSION = "16"

REPOSITORY_TYPES: frozenset[str] = frozenset({"deb", "deb-src"})
KEY_FORMATS: frozenset[str] = frozenset({"asc", "gpg"})

# Used as part of a file name under the sources and keyrings directories
REPOSITORY_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")


def validate_pg_version(value: str) -> str:
    """Validate a PostgreSQL major version.

    Args:
        value: Version to validate, e.g. "16"

    Returns:
        The validated version

    Raises:
        ValidationError: If the version is not supported
    """
    value = str(value).strip()
    if value not in SUPPORTED_PG_VERSIONS:
        raise ValidationError(
            f"Unsupported PostgreSQL version: {value}",
            hint=f"Use one of: {', '.join(SUPPORTED_PG_VERSIONS)}",
        )
    return value


def validate_url(
    value: str,
    require_https: bool = False,
    allowed_schemes: Optional[frozenset[str]] = None,
) -> str:
    """Validate a URL.

    Args:
        value: URL to validate
        require_https: If True, only HTTPS URLs are allowed
        allowed_schemes: Set of allowed schemes (default: http, https)

    Returns:
        The validated URL

    Raises:
        ValidationError: If validation fails
    """
    value = value.strip()

    if not allowed_schemes:
        allowed_schemes = frozenset({"http", "https"})

    try:
        parsed = urlparse(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid URL format: {value}",
            hint="Provide a valid URL",
            details=[str(e)],
        ) from e

    if not parsed.scheme:
        raise ValidationError(
            f"URL must include a scheme: {value}",
            hint=f"Use https://{value}",
        )

    if parsed.scheme.lower() not in allowed_schemes:
        raise ValidationError(
            f"URL scheme '{parsed.scheme}' not allowed",
            hint=f"Use one of: {', '.join(sorted(allowed_schemes))}",
        )

    if require_https and parsed.scheme.lower() != "https":
        raise ValidationError(
            "HTTPS is required for security",
            hint=f"Change {parsed.scheme}:// to https://",
        )

    if not parsed.netloc:
        raise ValidationError(
            f"URL must include a host: {value}",
            hint="Provide a complete URL like https://registry.pgxman.com/v1",
        )

    return value


def validate_path(value: str, must_be_absolute: bool = True) -> str:
    """Validate a directory path used for apt configuration.

    Args:
        value: Path to validate
        must_be_absolute: Require absolute path

    Returns:
        The validated path

    Raises:
        ValidationError: If validation fails
    """
    dangerous_patterns = ["..", "\n", "\r", "\x00"]

    for pattern in dangerous_patterns:
        if pattern in value:
            raise ValidationError(
                f"Path contains dangerous pattern: {repr(pattern)}",
                hint="Use a simple path without special characters",
            )

    if must_be_absolute and not value.startswith("/"):
        raise ValidationError(
            f"Path must be absolute: {value}",
            hint=f"Use /{value}",
        )

    return value


def validate_repository_id(value: str) -> str:
    """Validate an apt repository identifier.

    The identifier becomes part of the source and keyring file names.
    """
    if not value:
        raise ValidationError("Repository id cannot be empty")
    if not REPOSITORY_ID_PATTERN.match(value):
        raise ValidationError(
            f"Invalid repository id: '{value}'",
            hint="Use letters, digits, dots, dashes and underscores only",
        )
    return value


def validate_repository_types(values: Sequence[str]) -> Sequence[str]:
    """Validate apt repository types (deb, deb-src)."""
    if not values:
        raise ValidationError("Repository must declare at least one type")
    for value in values:
        if value not in REPOSITORY_TYPES:
            raise ValidationError(
                f"Invalid repository type: '{value}'",
                hint=f"Use one of: {', '.join(sorted(REPOSITORY_TYPES))}",
            )
    return values


def validate_key_format(value: str) -> str:
    """Validate a signing key format (asc or gpg)."""
    if value not in KEY_FORMATS:
        raise ValidationError(
            f"Invalid signing key format: '{value}'",
            hint=f"Use one of: {', '.join(sorted(KEY_FORMATS))}",
        )
    return value
