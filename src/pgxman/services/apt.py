"""Apt support: package manager and repository reconciliation.

The reconciler makes sure every repository an extension needs is
configured on the host. It only ever adds files: a repository whose URIs
are already declared anywhere in the sources directory is left alone,
which makes repeated runs no-ops.
"""

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlsplit

import requests
from jinja2 import Environment, PackageLoader, select_autoescape

from pgxman.core.audit import AuditEventType, AuditLogger, get_audit_logger
from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import ExecutionError, RepositoryError
from pgxman.core.executor import CommandExecutor, CommandResult
from pgxman.services.package_manager import PackageManager
from pgxman.services.registry import RepositoryDescriptor, create_session


APT_SOURCES_DIR = Path("/etc/apt/sources.list.d")
APT_KEYRINGS_DIR = Path("/usr/share/keyrings")
APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
KEY_DOWNLOAD_TIMEOUT = 10.0

FORCE_OVERWRITE_OPTS = ["-o", "Dpkg::Options::=--force-overwrite"]

# deb822 stanzas: "URIs: a b c"
SOURCE_FILE_URIS = re.compile(r"^URIs:[ \t]*(.+)$", re.MULTILINE)
# one-line format: "deb [options] URI suite components"
SOURCE_LIST_URIS = re.compile(r"^[ \t]*deb(?:-src)?[ \t]+(?:\[[^\]]*\][ \t]+)?(\S+)", re.MULTILINE)

CONFLICT_PATTERN = re.compile(r"trying to overwrite '(.+)', which is also in package")
PRIVILEGE_PATTERNS = [
    re.compile(r"are you root\?"),
    re.compile(r"Could not open lock file .*Permission denied"),
    re.compile(r"Unable to acquire the dpkg frontend lock.*are you root", re.DOTALL),
    re.compile(r"sudo: a (?:password|terminal) is required"),
    re.compile(r"is not in the sudoers file"),
]

jinja_env = Environment(
    loader=PackageLoader("pgxman", "templates"),
    autoescape=select_autoescape(),
    keep_trailing_newline=True,
)


def normalize_uri(uri: str) -> str:
    """Reduce a repository URI to the part apt treats as its identity.

    Scheme, credentials, query and fragment are dropped and the path is
    cleaned, so http://host/path/ and https://host/path are equal.
    """
    parts = urlsplit(uri.strip())
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    path = posixpath.normpath("/" + f"{host}{parts.path}".lstrip("/"))
    return path.rstrip("/") or "/"


def existing_source_uris(sources_dir: Path) -> set[str]:
    """Collect normalized URIs declared by every file in the sources directory."""
    result: set[str] = set()
    if not sources_dir.is_dir():
        return result

    for path in sorted(sources_dir.iterdir()):
        if not path.is_file():
            continue
        try:
            content = path.read_text(errors="replace")
        except OSError as e:
            raise RepositoryError(
                f"Cannot read apt source file: {path}",
                details=[str(e)],
            ) from e

        for match in SOURCE_LIST_URIS.finditer(content):
            result.add(normalize_uri(match.group(1)))

        for match in SOURCE_FILE_URIS.finditer(content):
            for uri in match.group(1).split():
                result.add(normalize_uri(uri))

    return result


def deb_normalized_name(name: str) -> str:
    """Debian package names are lower case and use dashes."""
    return name.lower().replace("_", "-")


def render_source(repo: RepositoryDescriptor, key_path: Path) -> str:
    """Render the deb822 stanza for a repository."""
    template = jinja_env.get_template("apt/pgxman.sources.j2")
    return template.render(
        types=repo.types,
        uris=repo.uris,
        suites=repo.suites,
        components=repo.components,
        signed_by=str(key_path),
    )


class AptPackageManager(PackageManager):
    """PackageManager backed by apt and apt-mark."""

    def _apt(
        self,
        command: str,
        args: list[str],
        *,
        sudo: bool,
        stream: bool = True,
        description: Optional[str] = None,
    ) -> CommandResult:
        return self.executor.run(
            [command] + args,
            description=description,
            check=False,
            stream=stream,
            sudo=sudo,
            env=APT_ENV,
        )

    def install(self, package: str, *, sudo: bool = False, force_overwrite: bool = False) -> CommandResult:
        args = ["install", "--yes", "--no-install-recommends"]
        if force_overwrite:
            args += FORCE_OVERWRITE_OPTS
        return self._apt("apt", args + [package], sudo=sudo, description=f"Installing {package}")

    def upgrade(self, package: str, *, sudo: bool = False, force_overwrite: bool = False) -> CommandResult:
        args = ["upgrade", "--allow-downgrades", "--yes", "--no-install-recommends"]
        if force_overwrite:
            args += FORCE_OVERWRITE_OPTS
        return self._apt("apt", args + [package], sudo=sudo, description=f"Upgrading {package}")

    def refresh_index(self, *, sudo: bool = False) -> CommandResult:
        return self._apt(
            "apt", ["update"], sudo=sudo, stream=False, description="Refreshing package index",
        )

    def hold(self, package: str, *, sudo: bool = False) -> Optional[CommandResult]:
        return self._apt("apt-mark", ["hold", _package_only(package)], sudo=sudo, stream=False)

    def unhold(self, package: str, *, sudo: bool = False) -> Optional[CommandResult]:
        return self._apt("apt-mark", ["unhold", _package_only(package)], sudo=sudo, stream=False)

    def package_name(self, name: str, version: str, pg_version: str) -> str:
        return f"postgresql-{pg_version}-pgxman-{deb_normalized_name(name)}={version}"

    def is_privilege_failure(self, output: str) -> bool:
        return any(pattern.search(output) for pattern in PRIVILEGE_PATTERNS)

    def is_conflict(self, output: str) -> bool:
        return CONFLICT_PATTERN.search(output) is not None


def _package_only(package: str) -> str:
    # apt-mark takes a bare package name, no =version pin
    return package.split("=", 1)[0]


@dataclass
class AptSource:
    """A repository planned for writing."""
    repo: RepositoryDescriptor
    source_path: Path
    key_path: Path
    source_content: str
    key_content: bytes = b""

    @property
    def name(self) -> str:
        return self.repo.name

    def __str__(self) -> str:
        return f"{self.name} ({self.source_path})"


class AptRepositoryReconciler:
    """Adds missing apt repositories and refreshes the index once.

    Every signing key is downloaded before the first file is written, and
    the index refresh runs only after all writes completed, so a failed or
    cancelled run never refreshes.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        package_manager: PackageManager,
        *,
        sources_dir: Path = APT_SOURCES_DIR,
        keyrings_dir: Path = APT_KEYRINGS_DIR,
        session: Optional[requests.Session] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.package_manager = package_manager
        self.sources_dir = Path(sources_dir)
        self.keyrings_dir = Path(keyrings_dir)
        self.session = session or create_session()
        self.audit = audit or get_audit_logger()

    def plan(self, desired: Iterable[RepositoryDescriptor]) -> list[AptSource]:
        """Work out which repositories need writing, without touching the host."""
        existing = existing_source_uris(self.sources_dir)
        planned_uris: set[frozenset[str]] = set()
        planned: list[AptSource] = []

        for repo in desired:
            uris = frozenset(normalize_uri(u) for u in repo.uris)
            if uris <= existing:
                self.ctx.console.debug(f"Skipping apt source that already exists: {repo.name}")
                continue
            if uris in planned_uris:
                self.ctx.console.debug(f"Skipping duplicated apt source: {repo.name}")
                continue
            planned_uris.add(uris)

            key_path = self.keyrings_dir / f"{repo.name}.{repo.signed_key.format}"
            planned.append(AptSource(
                repo=repo,
                source_path=self.sources_dir / f"{repo.name}.sources",
                key_path=key_path,
                source_content=render_source(repo, key_path),
            ))

        return planned

    def reconcile(self, desired: Iterable[RepositoryDescriptor], sudo: bool = False) -> int:
        """Write missing repositories and refresh the index if anything changed.

        Args:
            desired: Repositories the resolved extensions need
            sudo: Write files and refresh with sudo

        Returns:
            Number of repositories added

        Raises:
            RepositoryError: If a key download, a write or the refresh fails
            OperationCancelledError: If cancelled before all writes completed
        """
        sources = self.plan(desired)
        if not sources:
            self.ctx.console.debug("Apt repositories are up to date")
            return 0

        for source in sources:
            self.ctx.check_cancelled("Repository setup")
            source.key_content = self._download_key(source.repo)

        for source in sources:
            self.ctx.check_cancelled("Repository setup")
            self._write_source(source, sudo)

        self._refresh(sudo)
        return len(sources)

    def _download_key(self, repo: RepositoryDescriptor) -> bytes:
        url = repo.signed_key.url
        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(f"Download signing key {url}")
            return b""

        self.ctx.console.debug(f"Downloading signing key for {repo.name}: {url}")
        try:
            response = self.session.get(url, timeout=KEY_DOWNLOAD_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise RepositoryError(
                f"Failed to download signing key for {repo.name}",
                hint="Check your network connection",
                details=[url, str(e)],
            ) from e
        return response.content

    def _write_source(self, source: AptSource, sudo: bool) -> None:
        self.ctx.console.step(f"Adding apt repository {source.name}")
        try:
            self.executor.write_file(
                source.key_path,
                source.key_content,
                description=f"Write signing key {source.key_path}",
                sudo=sudo,
            )
            self.executor.write_file(
                source.source_path,
                source.source_content,
                description=f"Write apt source {source.source_path}",
                sudo=sudo,
            )
        except ExecutionError as e:
            self.audit.log_failure(
                AuditEventType.REPOSITORY_ADD, "repository", source.name, e.message,
            )
            raise RepositoryError(
                f"Failed to add apt repository {source.name}",
                hint=e.hint or "Re-run with --sudo or as root",
                details=e.details,
            ) from e

        if self.ctx.dry_run:
            self.audit.log_dry_run(AuditEventType.REPOSITORY_ADD, "repository", source.name)
        else:
            self.audit.log_success(
                AuditEventType.REPOSITORY_ADD,
                "repository",
                source.name,
                parameters={"uris": list(source.repo.uris), "source": str(source.source_path)},
            )

    def _refresh(self, sudo: bool) -> None:
        result = self.package_manager.refresh_index(sudo=sudo)
        if not result.success:
            self.audit.log_failure(
                AuditEventType.INDEX_REFRESH, "index", "apt", result.output.strip(),
            )
            raise RepositoryError(
                "Failed to refresh the package index",
                details=[line for line in result.output.strip().splitlines()[-5:]],
            )
        if self.ctx.dry_run:
            self.audit.log_dry_run(AuditEventType.INDEX_REFRESH, "index", "apt")
        else:
            self.audit.log_success(AuditEventType.INDEX_REFRESH, "index", "apt")
