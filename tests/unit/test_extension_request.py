"""Unit tests for extension argument parsing."""

import pytest

from pgxman.core.exceptions import MalformedRequestError
from pgxman.services.extension_request import (
    ExtensionRequest,
    LATEST,
    parse_request,
    parse_requests,
)


class TestParseRequest:
    """Tests for parse_request."""

    def test_name_only(self):
        """A bare name has no version and resolves to latest."""
        req = parse_request("pgvector")
        assert req.name == "pgvector"
        assert req.version is None
        assert req.path is None
        assert req.wants_latest

    def test_name_and_version(self):
        """The version is kept exactly as written."""
        req = parse_request("pgvector=0.5.1")
        assert req.name == "pgvector"
        assert req.version == "0.5.1"
        assert not req.wants_latest

    def test_empty_version_is_kept(self):
        """name= yields an empty version, distinct from no version."""
        req = parse_request("pgvector=")
        assert req.version == ""
        assert req.version is not None
        assert req.wants_latest

    def test_latest_wildcard(self):
        """The literal latest resolves like no version."""
        req = parse_request(f"pgvector={LATEST}")
        assert req.version == "latest"
        assert req.wants_latest

    def test_options_attached(self):
        """Target version and overwrite flag are carried on the request."""
        req = parse_request("pg_ivm=1.7.0", pg_version="15", overwrite=True)
        assert req.pg_version == "15"
        assert req.overwrite is True

    def test_at_sign_rejected(self):
        """'@' is outside the token grammar."""
        with pytest.raises(MalformedRequestError) as exc:
            parse_request("pgvector@0.5.1")
        assert "pgvector@0.5.1" in str(exc.value)

    def test_second_equals_rejected(self):
        """Only the first '=' separates name and version."""
        with pytest.raises(MalformedRequestError) as exc:
            parse_request("pgvector=0.5=1")
        assert exc.value.arg == "pgvector=0.5=1"

    def test_malformed_inputs(self):
        """Empty names, whitespace and stray separators fail."""
        for arg in ["", "=0.5.1", "pg vector", "@", "a=b=c"]:
            with pytest.raises(MalformedRequestError):
                parse_request(arg)

    def test_existing_file_is_local(self, tmp_path, monkeypatch):
        """An existing file is always a local request, even if it looks like a name."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / "pgvector=0.5.1").write_bytes(b"deb")

        req = parse_request("pgvector=0.5.1")
        assert req.is_local
        assert req.name is None
        assert req.path == (tmp_path / "pgvector=0.5.1").resolve()

    def test_local_path_is_absolute(self, tmp_path, monkeypatch):
        """Relative paths are resolved."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / "hello.deb").write_bytes(b"deb")

        req = parse_request("./hello.deb", overwrite=True)
        assert req.path.is_absolute()
        assert req.overwrite is True

    def test_missing_file_falls_back_to_name(self, tmp_path, monkeypatch):
        """A path that does not exist is parsed as a name."""
        monkeypatch.chdir(tmp_path)
        req = parse_request("hello.deb")
        assert req.name == "hello.deb"
        assert not req.is_local


class TestParseRequests:
    """Tests for parse_requests."""

    def test_order_preserved(self):
        """Requests come back in argument order."""
        reqs = parse_requests(["b", "a=1", "c="], pg_version="16")
        assert [r.name for r in reqs] == ["b", "a", "c"]
        assert all(r.pg_version == "16" for r in reqs)

    def test_first_malformed_raises(self):
        """The first malformed argument is reported."""
        with pytest.raises(MalformedRequestError) as exc:
            parse_requests(["ok", "bad@1", "worse@2"])
        assert exc.value.arg == "bad@1"


class TestExtensionRequest:
    """Tests for the ExtensionRequest type."""

    def test_needs_exactly_one_form(self):
        """Name and path are mutually exclusive and one is required."""
        with pytest.raises(ValueError):
            ExtensionRequest()
        with pytest.raises(ValueError):
            ExtensionRequest(name="a", path="/tmp/a.deb")

    def test_str(self):
        """String form mirrors the argument."""
        assert str(ExtensionRequest(name="pgvector")) == "pgvector"
        assert str(ExtensionRequest(name="pgvector", version="")) == "pgvector="
        assert str(ExtensionRequest(name="pgvector", version="0.5.1")) == "pgvector=0.5.1"
