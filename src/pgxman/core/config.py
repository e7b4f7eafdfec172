"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides for secrets
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgxman.core.exceptions import ConfigurationError, ValidationError
from pgxman.core.validation import (
    DEFAULT_PG_VERSION,
    validate_path,
    validate_pg_version,
    validate_url,
)


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/pgxman/config.yaml")
DEFAULT_REGISTRY_URL = "https://registry.pgxman.com/v1"


class RegistryConfig(BaseModel):
    """Extension registry configuration."""

    url: str = DEFAULT_REGISTRY_URL
    timeout: float = 10.0

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return validate_url(v).rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be greater than 0")
        return v


class AptConfig(BaseModel):
    """Apt host layout."""

    sources_dir: Path = Path("/etc/apt/sources.list.d")
    keyrings_dir: Path = Path("/usr/share/keyrings")

    @field_validator("sources_dir", "keyrings_dir")
    @classmethod
    def validate_dir(cls, v: Path) -> Path:
        return Path(validate_path(str(v)))


class PostgresConfig(BaseModel):
    """PostgreSQL configuration."""

    default_version: str = DEFAULT_PG_VERSION

    @field_validator("default_version", mode="before")
    @classmethod
    def validate_version(cls, v: object) -> str:
        return validate_pg_version(str(v))


class InstallConfig(BaseModel):
    """Install pipeline tuning."""

    resolve_workers: int = 4

    @field_validator("resolve_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError("resolve_workers must be between 1 and 32")
        return v


class PgxmanConfig(BaseModel):
    """Root configuration model.

    Loaded from /etc/pgxman/config.yaml when present. The registry token is
    NOT stored in this file; it comes from PGXMAN_REGISTRY_TOKEN.
    """

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    apt: AptConfig = Field(default_factory=AptConfig)
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)

    @classmethod
    def load(cls, path: Path) -> "PgxmanConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: pgxman config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError as e:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration: {path} must contain a mapping",
            )

        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {path}",
                details=[err["msg"] for err in e.errors()],
            ) from e
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {path}",
                hint=e.hint,
                details=[e.message],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "PgxmanConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class SecretsConfig(BaseSettings):
    """Secrets loaded from environment variables.

    These are NEVER stored in config files.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    registry_token: Optional[str] = Field(None, alias="PGXMAN_REGISTRY_TOKEN")


class AppConfig:
    """Application configuration combining config file and secrets."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[PgxmanConfig] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or PgxmanConfig.load_or_default(self.config_path)
        self._secrets = SecretsConfig()

    @property
    def config(self) -> PgxmanConfig:
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        return self._secrets

    @property
    def registry(self) -> RegistryConfig:
        return self._config.registry

    @property
    def apt(self) -> AptConfig:
        return self._config.apt

    @property
    def postgres(self) -> PostgresConfig:
        return self._config.postgres

    @property
    def install(self) -> InstallConfig:
        return self._config.install


def get_example_config() -> str:
    """Generate example configuration file content."""
    return f"""# pgxman configuration
# The registry token is loaded from PGXMAN_REGISTRY_TOKEN, NOT stored here

# Extension registry
registry:
  url: {DEFAULT_REGISTRY_URL}
  timeout: 10  # seconds

# Apt host layout
apt:
  sources_dir: /etc/apt/sources.list.d
  keyrings_dir: /usr/share/keyrings

# Used when pg_config cannot detect an installed version
postgres:
  default_version: "{DEFAULT_PG_VERSION}"

# Install pipeline
install:
  resolve_workers: 4  # 1 resolves sequentially
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o644)
