"""Bundle files.

A bundle (pgxman.yaml) declares a set of extensions for one PostgreSQL
version. Installing a bundle runs the normal pipeline in upgrade mode,
so re-running it converges the host on the declared versions.

Example:
    apiVersion: v1
    extensions:
      - name: pgvector
        version: "0.5.1"
      - path: /tmp/postgresql-16-pgxman-hello_1.0.0_amd64.deb
    postgres:
      version: "16"
"""

import sys
from pathlib import Path
from typing import Optional, TextIO

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from pgxman.core.exceptions import ConfigurationError, ValidationError
from pgxman.core.validation import DEFAULT_PG_VERSION, validate_pg_version
from pgxman.services.extension_request import ExtensionRequest


BUNDLE_API_VERSION = "v1"
DEFAULT_BUNDLE_FILE = "pgxman.yaml"
STDIN_MARKER = "-"


class BundleExtension(BaseModel):
    """One extension entry: either name (+version) or path."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    version: Optional[str] = None
    path: Optional[str] = None
    overwrite: bool = False

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: object) -> Optional[str]:
        # YAML reads 1.0 as a float
        return None if v is None else str(v)

    @model_validator(mode="after")
    def check_form(self) -> "BundleExtension":
        if bool(self.name) == bool(self.path):
            raise ValueError("each extension needs exactly one of name or path")
        if self.path and self.version:
            raise ValueError(f"version cannot be set for local package {self.path}")
        return self


class BundlePostgres(BaseModel):
    version: str = DEFAULT_PG_VERSION

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v: object) -> str:
        try:
            return validate_pg_version(str(v))
        except ValidationError as e:
            raise ValueError(e.message) from e


class Bundle(BaseModel):
    """Parsed pgxman.yaml."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    api_version: str = Field(alias="apiVersion")
    extensions: list[BundleExtension] = Field(default_factory=list)
    postgres: BundlePostgres = Field(default_factory=BundlePostgres)

    @field_validator("api_version")
    @classmethod
    def validate_api_version(cls, v: str) -> str:
        if v != BUNDLE_API_VERSION:
            raise ValueError(f"unsupported apiVersion {v!r}, expected {BUNDLE_API_VERSION!r}")
        return v

    @property
    def pg_version(self) -> str:
        return self.postgres.version

    def to_requests(self, base_dir: Path, overwrite: bool = False) -> list[ExtensionRequest]:
        """Convert entries to extension requests.

        Relative paths are resolved against base_dir.

        Raises:
            ConfigurationError: If a local package does not exist
        """
        requests = []
        for ext in self.extensions:
            if ext.path:
                path = Path(ext.path)
                if not path.is_absolute():
                    path = base_dir / path
                if not path.exists():
                    raise ConfigurationError(
                        f"Local package not found: {path}",
                        hint="Paths in a bundle are relative to the bundle file",
                    )
                requests.append(ExtensionRequest(
                    path=path.resolve(),
                    pg_version=self.pg_version,
                    overwrite=overwrite or ext.overwrite,
                ))
            else:
                requests.append(ExtensionRequest(
                    name=ext.name,
                    version=ext.version,
                    pg_version=self.pg_version,
                    overwrite=overwrite or ext.overwrite,
                ))
        return requests


def parse_bundle(content: str, source: str = DEFAULT_BUNDLE_FILE) -> Bundle:
    """Parse bundle YAML.

    Raises:
        ConfigurationError: If the YAML or its contents are invalid
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in bundle file: {source}",
            details=[str(e)],
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid bundle file: {source}",
            hint="The bundle must be a mapping with apiVersion, extensions and postgres",
        )

    try:
        return Bundle.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid bundle file: {source}",
            details=[
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
                for err in e.errors()
            ],
        ) from e


def load_bundle(file: str, stdin: Optional[TextIO] = None) -> tuple[Bundle, Path]:
    """Load a bundle from a path, or from stdin when file is "-".

    Returns:
        The bundle and the directory relative paths resolve against
    """
    if file == STDIN_MARKER:
        stream = stdin or sys.stdin
        return parse_bundle(stream.read(), "<stdin>"), Path.cwd()

    path = Path(file)
    if not path.exists():
        raise ConfigurationError(
            f"Bundle file not found: {path}",
            hint=f"Create a {DEFAULT_BUNDLE_FILE} or pass one with -f",
        )
    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read bundle file: {path}", details=[str(e)]) from e

    return parse_bundle(content, str(path)), path.resolve().parent
