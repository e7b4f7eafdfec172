"""PostgreSQL installation detection.

Extensions are only published for PGDG builds of PostgreSQL, so a
version is only reported when pg_config identifies a pgdg package.
"""

import re
import subprocess
from pathlib import Path
from typing import Optional

from pgxman.core.exceptions import PostgresNotFoundError, ValidationError
from pgxman.core.output import console
from pgxman.core.validation import validate_pg_version


# PostgreSQL 16.1 (Debian 16.1-1.pgdg120+1)
PG_VERSION_PATTERN = re.compile(r"^PostgreSQL (\d+).+\((.+)\s(.+)\)$")
PG_LIB_DIR = Path("/usr/lib/postgresql")
PG_CONFIG_TIMEOUT = 10


def parse_pg_version(output: str) -> Optional[str]:
    """Parse the major version out of `pg_config --version` output.

    Returns None for unparsable output, non-pgdg builds and unsupported
    major versions.
    """
    match = PG_VERSION_PATTERN.match(output.strip())
    if match is None:
        console.debug(f"Cannot parse PostgreSQL version: {output.strip()!r}")
        return None

    if "pgdg" not in match.group(3):
        console.debug(f"Unsupported PostgreSQL distribution: {match.group(3)}")
        return None

    try:
        return validate_pg_version(match.group(1))
    except ValidationError:
        console.debug(f"Unsupported PostgreSQL version: {match.group(1)}")
        return None


def pg_config_version(pg_config: str = "pg_config") -> Optional[str]:
    """Run pg_config and return the supported major version it reports."""
    try:
        result = subprocess.run(
            [pg_config, "--version"],
            capture_output=True,
            text=True,
            timeout=PG_CONFIG_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        console.debug(f"Cannot run {pg_config}: {e}")
        return None

    if result.returncode != 0:
        return None
    return parse_pg_version(result.stdout or result.stderr)


def detect_pg_version() -> Optional[str]:
    """Detect the PostgreSQL version of the pg_config on PATH."""
    return pg_config_version("pg_config")


def pg_version_installed(pg_version: str, lib_dir: Path = PG_LIB_DIR) -> bool:
    """Check that a PGDG build of the given major version is installed."""
    pg_config = lib_dir / pg_version / "bin" / "pg_config"
    if not pg_config.exists():
        return False
    return pg_config_version(str(pg_config)) == pg_version


def require_pg_version(pg_version: Optional[str], lib_dir: Path = PG_LIB_DIR) -> str:
    """Return pg_version if it is installed.

    Raises:
        PostgresNotFoundError: If no version is given or it is not installed
    """
    if not pg_version or not pg_version_installed(pg_version, lib_dir):
        raise PostgresNotFoundError(pg_version)
    return pg_version
