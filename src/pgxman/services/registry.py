"""Extension registry client.

The registry answers two questions: what is the latest release of an
extension, and what does a specific release look like. Both responses
carry, per PostgreSQL major version, the package version and the apt
repositories each platform build needs.
"""

from typing import Any, Callable, Optional
from urllib.parse import quote, urlparse

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator
from requests.adapters import HTTPAdapter, Retry

from pgxman import __version__
from pgxman.core.config import DEFAULT_REGISTRY_URL
from pgxman.core.exceptions import RegistryError, ValidationError
from pgxman.core.output import console
from pgxman.core.validation import validate_key_format, validate_repository_id, validate_repository_types


DEFAULT_TIMEOUT = 10.0
USER_AGENT = f"pgxman/{__version__}"


def _as_field_check(validator: Callable[[Any], Any], value: Any) -> Any:
    """Run a pgxman validator inside a pydantic field validator."""
    try:
        return validator(value)
    except ValidationError as e:
        raise ValueError(e.message) from e


class SignedKey(BaseModel):
    """Location and format of a repository signing key."""

    model_config = ConfigDict(frozen=True)

    url: str
    format: str = "asc"

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        return _as_field_check(validate_key_format, v)


class RepositoryDescriptor(BaseModel):
    """An apt repository required by a platform build."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    types: tuple[str, ...]
    uris: tuple[str, ...]
    suites: tuple[str, ...]
    components: tuple[str, ...] = ()
    signed_key: SignedKey = Field(alias="signedKey")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _as_field_check(validate_repository_id, v)

    @field_validator("types")
    @classmethod
    def validate_types(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return _as_field_check(validate_repository_types, v)

    @field_validator("uris", "suites")
    @classmethod
    def validate_not_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("must not be empty")
        return v

    @property
    def name(self) -> str:
        """File name stem used for the source and keyring files."""
        return f"pgxman-{self.id}"


class PlatformBuild(BaseModel):
    """A package build for one platform."""

    model_config = ConfigDict(populate_by_name=True)

    platform: str = Field(alias="os")
    apt_repositories: list[RepositoryDescriptor] = Field(default_factory=list, alias="aptRepositories")


class InstallablePackage(BaseModel):
    """The package published for one PostgreSQL major version."""

    version: str
    platforms: list[PlatformBuild] = Field(default_factory=list)

    def get_platform(self, platform: str) -> Optional[PlatformBuild]:
        for build in self.platforms:
            if build.platform == str(platform):
                return build
        return None


class RegistryExtension(BaseModel):
    """The registry's view of an extension release."""

    name: str
    packages: dict[str, InstallablePackage] = Field(default_factory=dict)

    @field_validator("packages", mode="before")
    @classmethod
    def coerce_pg_keys(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): pkg for k, pkg in v.items()}
        return v


def create_session(token: Optional[str] = None) -> requests.Session:
    """Create a requests session that retries idempotent calls.

    Only throttling and server errors are retried. Connect and read
    timeouts fail on the first attempt so the configured timeout bounds
    each lookup.
    """
    retry_strategy = Retry(
        total=3,
        connect=0,
        read=False,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["HEAD", "GET", "OPTIONS"],
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = USER_AGENT
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
    return session


class RegistryClient:
    """HTTP client for the extension registry.

    Not-found is an ordinary answer: both lookups return None on 404.
    Every other failure, timeouts included, raises RegistryError.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # Credentials embedded in the URL take precedence over a token
        if urlparse(self.base_url).username:
            token = None
        self.session = session or create_session(token)

    def get_extension(self, name: str) -> Optional[RegistryExtension]:
        """Get the latest release of an extension, or None if unknown."""
        data = self._get(f"extensions/{quote(name, safe='')}")
        if data is None:
            return None
        return self._parse(data, name)

    def get_version(self, name: str, version: str) -> Optional[RegistryExtension]:
        """Get a specific release of an extension, or None if unknown."""
        data = self._get(
            f"extensions/{quote(name, safe='')}/versions/{quote(version, safe='')}"
        )
        if data is None:
            return None
        return self._parse(data, f"{name} {version}")

    def _get(self, path: str) -> Optional[dict[str, Any]]:
        url = f"{self.base_url}/{path}"
        console.debug(f"GET {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.Timeout as e:
            raise RegistryError(
                f"Registry request timed out after {self.timeout}s",
                hint="Check your network connection or raise registry.timeout",
                details=[url],
            ) from e
        except requests.RequestException as e:
            raise RegistryError(
                "Cannot reach the extension registry",
                hint="Check your network connection and registry.url",
                details=[url, str(e)],
            ) from e

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            raise RegistryError(
                f"Registry returned HTTP {response.status_code}",
                details=[url, _error_message(response)],
            )

        try:
            return response.json()
        except ValueError as e:
            raise RegistryError(
                "Registry returned an invalid response",
                details=[url, str(e)],
            ) from e

    def _parse(self, data: dict[str, Any], what: str) -> RegistryExtension:
        try:
            return RegistryExtension.model_validate(data)
        except PydanticValidationError as e:
            raise RegistryError(
                f"Registry returned malformed data for {what}",
                details=[err["msg"] for err in e.errors()],
            ) from e


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text.strip()
