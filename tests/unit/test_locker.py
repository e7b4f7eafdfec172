"""Unit tests for extension resolution."""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import (
    ExtensionNotFoundError,
    IncompatiblePlatformError,
    IncompatiblePostgresVersionError,
    OperationCancelledError,
    RegistryError,
    UnsupportedPlatformError,
    VersionNotFoundError,
)
from pgxman.services.extension_request import ExtensionRequest
from pgxman.services.locker import ExtensionLocker, ResolvedExtension
from pgxman.services.platform import Platform
from pgxman.services.registry import RegistryExtension, RepositoryDescriptor

PGVECTOR_REPO = {
    "id": "pgvector",
    "types": ["deb"],
    "uris": ["https://apt.pgxman.com/pgvector"],
    "suites": ["bookworm"],
    "components": ["main"],
    "signedKey": {"url": "https://apt.pgxman.com/key.asc", "format": "asc"},
}

def make_extension(name: str, version: str, pg_versions=("16",), platforms=("debian_bookworm",)):
    """Build a registry release with one repository per platform build."""
    return RegistryExtension.model_validate({
        "name": name,
        "packages": {
            pg: {
                "version": version,
                "platforms": [
                    {"os": platform, "aptRepositories": [PGVECTOR_REPO]}
                    for platform in platforms
                ],
            }
            for pg in pg_versions
        },
    })

class FakeRegistry:
    """In-memory registry: {name: {version: RegistryExtension}} plus latest."""

    def __init__(self, releases: dict[str, list[RegistryExtension]]) -> None:
        self.releases = releases
        self.calls: list[tuple] = []
        self.lock = threading.Lock()

    def get_extension(self, name):
        with self.lock:
            self.calls.append(("extension", name))
        versions = self.releases.get(name)
        return versions[-1] if versions else None

    def get_version(self, name, version):
        with self.lock:
            self.calls.append(("version", name, version))
        for release in self.releases.get(name, []):
            if release.packages and any(p.version == version for p in release.packages.values()):
                return release
        return None

@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry({
        "pgvector": [
            make_extension("pgvector", "0.5.0"),
            make_extension("pgvector", "0.5.1", pg_versions=("15", "16")),
        ],
        "pg_ivm": [make_extension("pg_ivm", "1.7.0", platforms=("ubuntu_jammy",))],
    })

def locker_for(registry, platform=Platform.DEBIAN_BOOKWORM, workers=1) -> ExtensionLocker:
    return ExtensionLocker(registry, lambda: platform, workers=workers)

class TestLock:
    """Tests for ExtensionLocker.lock."""

    def test_latest_pgvector(self, registry):
        """pgvector with no version resolves to the registry's latest package."""
        [resolved] = locker_for(registry).lock([ExtensionRequest(name="pgvector", pg_version="16")])

        assert resolved.name == "pgvector"
        assert resolved.version == "0.5.1"
        assert resolved.pg_version == "16"
        assert resolved.repositories == (RepositoryDescriptor.model_validate(PGVECTOR_REPO),)

    def test_latest_wildcards_skip_version_lookup(self, registry):
        """No version, "" and "latest" only query the extension."""
        for version in (None, "", "latest"):
            registry.calls.clear()
            [resolved] = locker_for(registry).lock(
                [ExtensionRequest(name="pgvector", version=version, pg_version="16")]
            )
            assert resolved.version == "0.5.1"
            assert registry.calls == [("extension", "pgvector")]

    def test_specific_version(self, registry):
        """A pinned version is looked up and returned exactly."""
        [resolved] = locker_for(registry).lock(
            [ExtensionRequest(name="pgvector", version="0.5.0", pg_version="16")]
        )
        assert resolved.version == "0.5.0"
        assert ("version", "pgvector", "0.5.0") in registry.calls

    def test_unknown_extension_with_version(self, registry):
        """A missing extension is never reported as a missing version."""
        with pytest.raises(ExtensionNotFoundError) as exc:
            locker_for(registry).lock([ExtensionRequest(name="nope", version="1.0", pg_version="16")])
        assert exc.value.name == "nope"

    def test_unknown_version(self, registry):
        """A missing version of a known extension is VersionNotFound."""
        with pytest.raises(VersionNotFoundError) as exc:
            locker_for(registry).lock(
                [ExtensionRequest(name="pgvector", version="9.9.9", pg_version="16")]
            )
        assert exc.value.version == "9.9.9"

    def test_incompatible_pg_version(self, registry):
        """No package for the target PostgreSQL version."""
        with pytest.raises(IncompatiblePostgresVersionError) as exc:
            locker_for(registry).lock([ExtensionRequest(name="pgvector", pg_version="13")])
        assert exc.value.pg_version == "13"

    def test_incompatible_platform(self, registry):
        """Same extension and version on a platform without a build."""
        with pytest.raises(IncompatiblePlatformError) as exc:
            locker_for(registry, platform=Platform.UBUNTU_NOBLE).lock(
                [ExtensionRequest(name="pgvector", pg_version="16")]
            )
        assert exc.value.version == "0.5.1"
        assert exc.value.platform == "ubuntu_noble"
        assert "is incompatible with ubuntu_noble" in str(exc.value)

    def test_local_passthrough(self, registry):
        """Local requests make no registry call and carry no repositories."""
        path = Path("/tmp/hello.deb")
        [resolved] = locker_for(registry).lock(
            [ExtensionRequest(path=path, pg_version="16", overwrite=True)]
        )

        assert resolved.is_local
        assert resolved.path == path
        assert resolved.overwrite is True
        assert resolved.repositories == ()
        assert registry.calls == []

    def test_overwrite_attached(self, registry):
        """The overwrite flag follows each request."""
        resolved = locker_for(registry).lock([
            ExtensionRequest(name="pgvector", pg_version="16", overwrite=True),
            ExtensionRequest(name="pgvector", pg_version="16"),
        ])
        assert [r.overwrite for r in resolved] == [True, False]

    def test_default_pg_version(self, registry):
        """Requests without a PostgreSQL version use the default."""
        [resolved] = locker_for(registry).lock([ExtensionRequest(name="pgvector")])
        assert resolved.pg_version == "16"

    def test_empty(self, registry):
        """Nothing to resolve, platform not even detected."""
        detector = MagicMock()
        assert ExtensionLocker(registry, detector).lock([]) == []
        detector.assert_not_called()

    def test_unsupported_platform_propagates(self, registry):
        """Detection failures abort the batch."""
        def detect():
            raise UnsupportedPlatformError("arch")

        with pytest.raises(UnsupportedPlatformError):
            ExtensionLocker(registry, detect).lock([ExtensionRequest(name="pgvector")])

    def test_registry_error_propagates(self):
        """Transport failures are not turned into not-found."""
        client = MagicMock()
        client.get_extension.side_effect = RegistryError("Cannot reach the extension registry")

        with pytest.raises(RegistryError):
            locker_for(client).lock([ExtensionRequest(name="pgvector")])

class TestParallelLock:
    """Tests for the thread pool fan-out."""

    def test_order_preserved(self, registry):
        """Results keep input order with several workers."""
        requests = [
            ExtensionRequest(name="pgvector", version="0.5.0", pg_version="16"),
            ExtensionRequest(path=Path("/tmp/a.deb")),
            ExtensionRequest(name="pgvector", pg_version="15"),
        ]
        resolved = locker_for(registry, workers=4).lock(requests)

        assert [str(r) for r in resolved] == ["pgvector=0.5.0", "/tmp/a.deb", "pgvector=0.5.1"]

    def test_lowest_index_error_wins(self, registry):
        """With several failures the earliest request's error is raised."""
        requests = [
            ExtensionRequest(name="pgvector", pg_version="16"),
            ExtensionRequest(name="missing", pg_version="16"),
            ExtensionRequest(name="pgvector", version="9.9.9", pg_version="16"),
        ]
        with pytest.raises(ExtensionNotFoundError):
            locker_for(registry, workers=3).lock(requests)


class SlowRegistry:
    """Answers only after the test releases it."""

    def __init__(self):
        self.release = threading.Event()
        self.calls = 0

    def get_extension(self, name):
        self.calls += 1
        self.release.wait(5)
        return None

    def get_version(self, name, version):
        return None


class TestLockCancellation:
    """Tests for cancellation during resolution."""

    @pytest.mark.parametrize("workers", [1, 4])
    def test_cancel_during_lookup(self, workers):
        """Cancelling returns promptly without waiting for the registry."""
        ctx = ExecutionContext(verbosity=0)
        registry = SlowRegistry()
        locker = ExtensionLocker(registry, lambda: Platform.DEBIAN_BOOKWORM, workers=workers, ctx=ctx)
        timer = threading.Timer(0.2, ctx.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(OperationCancelledError):
                locker.lock([ExtensionRequest(name="pgvector"), ExtensionRequest(name="pg_ivm")])
            assert time.monotonic() - started < 2
        finally:
            timer.cancel()
            registry.release.set()

    def test_cancelled_before_lock(self, registry):
        """A cancelled context neither detects the platform nor queries the registry."""
        ctx = ExecutionContext(verbosity=0)
        ctx.cancel()
        detector = MagicMock()

        with pytest.raises(OperationCancelledError):
            ExtensionLocker(registry, detector, ctx=ctx).lock([ExtensionRequest(name="pgvector")])

        detector.assert_not_called()
        assert registry.calls == []


class TestResolvedExtension:
    """Tests for ResolvedExtension."""

    def test_display_name(self):
        """Registry extensions show their name, local ones their path."""
        assert ResolvedExtension(pg_version="16", name="pgvector", version="0.5.1").display_name == "pgvector"
        assert ResolvedExtension(pg_version="16", path=Path("/tmp/a.deb")).display_name == "/tmp/a.deb"
