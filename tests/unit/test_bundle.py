"""Unit tests for bundle files."""

import io

import pytest

from pgxman.core.exceptions import ConfigurationError
from pgxman.services.bundle import load_bundle, parse_bundle


BUNDLE = """\
apiVersion: v1
extensions:
  - name: pgvector
    version: "0.5.1"
  - name: pg_ivm
  - name: postgis
    version: 3.4
    overwrite: true
postgres:
  version: "15"
"""


class TestParseBundle:
    """Tests for parse_bundle."""

    def test_valid(self):
        """A full bundle parses into requests."""
        bundle = parse_bundle(BUNDLE)
        assert bundle.api_version == "v1"
        assert bundle.pg_version == "15"
        assert [e.name for e in bundle.extensions] == ["pgvector", "pg_ivm", "postgis"]

    def test_numeric_version_coerced(self):
        """Unquoted YAML numbers become version strings."""
        bundle = parse_bundle(BUNDLE)
        assert bundle.extensions[2].version == "3.4"

    def test_default_postgres(self):
        """postgres may be omitted."""
        bundle = parse_bundle("apiVersion: v1\nextensions:\n  - name: pgvector\n")
        assert bundle.pg_version == "16"

    def test_unsupported_api_version(self):
        """Only v1 is understood."""
        with pytest.raises(ConfigurationError) as exc:
            parse_bundle("apiVersion: v2\nextensions: []\n")
        assert any("apiVersion" in d for d in exc.value.details)

    def test_missing_api_version(self):
        """apiVersion is required."""
        with pytest.raises(ConfigurationError):
            parse_bundle("extensions: []\n")

    def test_name_or_path_required(self):
        """Each entry needs a name or a path."""
        with pytest.raises(ConfigurationError) as exc:
            parse_bundle("apiVersion: v1\nextensions:\n  - version: '1.0'\n")
        assert any("exactly one of name or path" in d for d in exc.value.details)

    def test_name_and_path_exclusive(self):
        """An entry cannot have both a name and a path."""
        with pytest.raises(ConfigurationError):
            parse_bundle("apiVersion: v1\nextensions:\n  - name: a\n    path: /tmp/a.deb\n")

    def test_unsupported_pg_version(self):
        """The PostgreSQL version is validated."""
        with pytest.raises(ConfigurationError):
            parse_bundle("apiVersion: v1\npostgres:\n  version: '9'\n")

    def test_invalid_yaml(self):
        """Broken YAML is a configuration error."""
        with pytest.raises(ConfigurationError) as exc:
            parse_bundle("apiVersion: [v1\n")
        assert "Invalid YAML" in str(exc.value)

    def test_not_a_mapping(self):
        """The document must be a mapping."""
        with pytest.raises(ConfigurationError):
            parse_bundle("- a\n- b\n")


class TestToRequests:
    """Tests for Bundle.to_requests."""

    def test_registry_requests(self, tmp_path):
        """Entries become requests for the bundle's PostgreSQL version."""
        requests = parse_bundle(BUNDLE).to_requests(tmp_path)

        assert [str(r) for r in requests] == ["pgvector=0.5.1", "pg_ivm", "postgis=3.4"]
        assert all(r.pg_version == "15" for r in requests)
        assert [r.overwrite for r in requests] == [False, False, True]

    def test_global_overwrite(self, tmp_path):
        """--overwrite applies to every entry."""
        requests = parse_bundle(BUNDLE).to_requests(tmp_path, overwrite=True)
        assert all(r.overwrite for r in requests)

    def test_relative_path(self, tmp_path):
        """Local paths resolve against the bundle's directory."""
        (tmp_path / "hello.deb").write_bytes(b"deb")
        bundle = parse_bundle("apiVersion: v1\nextensions:\n  - path: hello.deb\n")

        [request] = bundle.to_requests(tmp_path)
        assert request.is_local
        assert request.path == (tmp_path / "hello.deb").resolve()

    def test_missing_local_package(self, tmp_path):
        """Local packages must exist."""
        bundle = parse_bundle("apiVersion: v1\nextensions:\n  - path: missing.deb\n")
        with pytest.raises(ConfigurationError):
            bundle.to_requests(tmp_path)


class TestLoadBundle:
    """Tests for load_bundle."""

    def test_from_file(self, tmp_path):
        """The base directory is the file's directory."""
        path = tmp_path / "pgxman.yaml"
        path.write_text(BUNDLE)

        bundle, base_dir = load_bundle(str(path))
        assert bundle.pg_version == "15"
        assert base_dir == tmp_path.resolve()

    def test_from_stdin(self):
        """'-' reads the bundle from stdin."""
        bundle, _ = load_bundle("-", stdin=io.StringIO(BUNDLE))
        assert len(bundle.extensions) == 3

    def test_missing_file(self, tmp_path):
        """A missing bundle file is a configuration error."""
        with pytest.raises(ConfigurationError) as exc:
            load_bundle(str(tmp_path / "pgxman.yaml"))
        assert "not found" in str(exc.value)
