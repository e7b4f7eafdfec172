"""Unit tests for the validation module."""

import pytest

from pgxman.core.validation import (
    SUPPORTED_PG_VERSIONS,
    validate_key_format,
    validate_path,
    validate_pg_version,
    validate_repository_id,
    validate_repository_types,
    validate_url,
)
from pgxman.core.exceptions import ValidationError


class TestValidatePgVersion:
    """Tests for PostgreSQL version validation."""

    def test_supported_versions(self):
        """Every supported major passes."""
        for version in SUPPORTED_PG_VERSIONS:
            assert validate_pg_version(version) == version

    def test_whitespace_and_int(self):
        """Values are normalized to strings."""
        assert validate_pg_version(" 16 ") == "16"
        assert validate_pg_version(15) == "15"

    def test_unsupported(self):
        """Unknown majors fail with a hint listing supported ones."""
        with pytest.raises(ValidationError) as exc:
            validate_pg_version("12")
        assert "Unsupported PostgreSQL version" in str(exc.value)
        assert "16" in exc.value.hint


class TestValidateUrl:
    """Tests for URL validation."""

    def test_valid_urls(self):
        """Valid URLs should pass."""
        assert validate_url("https://registry.pgxman.com/v1") == "https://registry.pgxman.com/v1"
        assert validate_url("http://localhost:8080") == "http://localhost:8080"

    def test_missing_scheme(self):
        """URLs without scheme should fail."""
        with pytest.raises(ValidationError) as exc:
            validate_url("registry.pgxman.com")
        assert "scheme" in str(exc.value).lower()

    def test_require_https(self):
        """HTTP should fail when HTTPS is required."""
        with pytest.raises(ValidationError) as exc:
            validate_url("http://example.com", require_https=True)
        assert "HTTPS" in str(exc.value)

    def test_invalid_scheme(self):
        """Non-HTTP schemes should fail by default."""
        with pytest.raises(ValidationError):
            validate_url("ftp://example.com")

    def test_missing_host(self):
        """URLs need a host."""
        with pytest.raises(ValidationError):
            validate_url("https://")


class TestValidatePath:
    """Tests for path validation."""

    def test_absolute(self):
        """Absolute paths pass."""
        assert validate_path("/etc/apt/sources.list.d") == "/etc/apt/sources.list.d"

    def test_relative(self):
        """Relative paths fail unless allowed."""
        with pytest.raises(ValidationError):
            validate_path("etc/apt")
        assert validate_path("etc/apt", must_be_absolute=False) == "etc/apt"

    def test_traversal(self):
        """Parent references are rejected."""
        with pytest.raises(ValidationError) as exc:
            validate_path("/etc/../root")
        assert "dangerous" in str(exc.value)


class TestRepositoryValidators:
    """Tests for repository descriptor validators."""

    def test_repository_id(self):
        """Ids are safe file name stems."""
        assert validate_repository_id("pgdg") == "pgdg"
        assert validate_repository_id("pgxman.core-1") == "pgxman.core-1"
        for bad in ["", "-x", "a/b", "a b"]:
            with pytest.raises(ValidationError):
                validate_repository_id(bad)

    def test_types(self):
        """Only deb and deb-src."""
        assert validate_repository_types(["deb", "deb-src"]) == ["deb", "deb-src"]
        with pytest.raises(ValidationError):
            validate_repository_types([])
        with pytest.raises(ValidationError):
            validate_repository_types(["rpm"])

    def test_key_format(self):
        """Only asc and gpg keys."""
        assert validate_key_format("gpg") == "gpg"
        with pytest.raises(ValidationError):
            validate_key_format("pem")
