"""Extension resolution.

Turns parsed requests into exact, platform-compatible releases by asking
the registry. Resolution is all-or-nothing: any failing request aborts
the whole batch.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Protocol

from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import (
    ExtensionNotFoundError,
    IncompatiblePlatformError,
    IncompatiblePostgresVersionError,
    VersionNotFoundError,
)
from pgxman.core.output import console
from pgxman.core.validation import DEFAULT_PG_VERSION
from pgxman.services.extension_request import ExtensionRequest
from pgxman.services.platform import Platform
from pgxman.services.registry import RegistryExtension, RepositoryDescriptor

class ExtensionSource(Protocol):
    """The two registry lookups resolution needs."""

    def get_extension(self, name: str) -> Optional[RegistryExtension]: ...

    def get_version(self, name: str, version: str) -> Optional[RegistryExtension]: ...

PlatformDetector = Callable[[], Platform]

# Seconds between cancellation checks while lookups run
CANCEL_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class ResolvedExtension:
    """A request pinned to an exact release.

    For registry extensions ``version`` is the registry's version string.
    Local packages carry no repositories and no version.
    """

    pg_version: str
    name: Optional[str] = None
    version: Optional[str] = None
    path: Optional[Path] = None
    overwrite: bool = False
    repositories: tuple[RepositoryDescriptor, ...] = field(default_factory=tuple)

    @property
    def is_local(self) -> bool:
        return self.path is not None

    @property
    def display_name(self) -> str:
        if self.path is not None:
            return str(self.path)
        return self.name

    def __str__(self) -> str:
        if self.path is not None:
            return str(self.path)
        return f"{self.name}={self.version}"

class ExtensionLocker:
    """Resolves extension requests against the registry.

    Requests are independent of each other and are resolved on a
    bounded thread pool. Results keep input order; when several requests
    fail, the error of the earliest one in the input is raised.
    """

    def __init__(
        self,
        client: ExtensionSource,
        detect_platform: PlatformDetector,
        workers: int = 1,
        ctx: Optional[ExecutionContext] = None,
    ) -> None:
        self.client = client
        self.detect_platform = detect_platform
        self.workers = max(1, workers)
        self.ctx = ctx

    def lock(self, requests: list[ExtensionRequest]) -> list[ResolvedExtension]:
        """Resolve every request or raise the first error.

        Lookups run on worker threads while this thread watches for
        cancellation, so a cancelled run returns without waiting for
        in-flight registry calls.

        Raises:
            UnsupportedPlatformError: If the host platform is not supported
            ResolutionError: If any request cannot be resolved
            RegistryError: If the registry cannot be queried
            OperationCancelledError: If cancelled before resolution finished
        """
        if not requests:
            return []

        self._check_cancelled()
        platform = self.detect_platform()
        console.debug(f"Resolving {len(requests)} extension(s) for {platform}")

        workers = min(self.workers, len(requests))
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pgxman-lock")
        try:
            futures = [pool.submit(self._resolve, request, platform) for request in requests]
            pending = set(futures)
            while pending:
                self._check_cancelled()
                _, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL)
            self._check_cancelled()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        # Collect in input order so the lowest-index failure wins
        return [future.result() for future in futures]

    def _check_cancelled(self) -> None:
        if self.ctx is not None:
            self.ctx.check_cancelled("Resolution")

    def _resolve(self, request: ExtensionRequest, platform: Platform) -> ResolvedExtension:
        self._check_cancelled()
        pg_version = request.pg_version or DEFAULT_PG_VERSION

        if request.is_local:
            return ResolvedExtension(
                pg_version=pg_version,
                path=request.path,
                overwrite=request.overwrite,
            )

        name = request.name
        extension = self.client.get_extension(name)
        if extension is None:
            raise ExtensionNotFoundError(name)

        if not request.wants_latest:
            extension = self.client.get_version(name, request.version)
            if extension is None:
                raise VersionNotFoundError(name, request.version)

        package = extension.packages.get(pg_version)
        if package is None:
            raise IncompatiblePostgresVersionError(name, pg_version)

        build = package.get_platform(platform)
        if build is None:
            raise IncompatiblePlatformError(name, package.version, str(platform))

        latest = "latest " if request.wants_latest else ""
        console.debug(f"Resolved {name} to {latest}{package.version} for PostgreSQL {pg_version}")

        return ResolvedExtension(
            pg_version=pg_version,
            name=name,
            version=package.version,
            overwrite=request.overwrite,
            repositories=tuple(build.apt_repositories),
        )
