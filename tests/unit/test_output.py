"""Unit tests for console output."""

import io

import pytest
from rich.console import Console as RichConsole

from pgxman.core.output import Console, Verbosity


def capture(console: Console) -> io.StringIO:
    buffer = io.StringIO()
    console._console = RichConsole(file=buffer, width=200, color_system=None, highlight=False)
    return buffer


@pytest.fixture
def console() -> Console:
    return Console()


class TestResultLines:
    """Tests for per-extension output."""

    def test_result(self, console):
        """Installed extensions link to their page."""
        out = capture(console)
        console.result("pg_ivm")
        assert out.getvalue() == "[✔] pg_ivm: https://pgx.sh/pg_ivm\n"

    def test_listing(self, console):
        """Titles are followed by indented items, brackets kept literally."""
        out = capture(console)
        console.listing("Packages:", ["postgresql-16-pgxman-pgvector=0.5.1", "[bold]x"])
        assert out.getvalue() == "Packages:\n  postgresql-16-pgxman-pgvector=0.5.1\n  [bold]x\n"


class TestOutputLine:
    """Tests for echoed apt output."""

    def test_literal(self, console):
        """apt output is printed as is."""
        out = capture(console)
        console.output_line("[/dim] Get:1 http://deb.debian.org")
        assert out.getvalue() == "[/dim] Get:1 http://deb.debian.org\n"

    def test_quiet(self, console):
        """Quiet mode hides apt output."""
        console.configure(verbosity=Verbosity.QUIET)
        out = capture(console)
        console.output_line("Reading package lists...")
        assert out.getvalue() == ""


class TestVerbosity:
    """Tests for level filtering."""

    def test_levels(self, console):
        """Debug and verbose lines need their level."""
        console.configure(verbosity=Verbosity.VERBOSE)
        out = capture(console)
        console.verbose("retrying")
        console.debug("GET https://registry.pgxman.com/v1/extensions/pgvector")
        assert "retrying" in out.getvalue()
        assert "GET" not in out.getvalue()

    def test_clamped(self, console):
        """Repeated -v flags stop at debug."""
        console.configure(verbosity=7)
        assert console.verbosity is Verbosity.DEBUG


class TestConfirm:
    """Tests for yes/no prompts."""

    @pytest.mark.parametrize("answer,default,expected", [
        ("y", False, True),
        ("yes", False, True),
        ("n", True, False),
        ("", True, True),
        ("", False, False),
        ("maybe", True, False),
    ])
    def test_answers(self, console, monkeypatch, answer, default, expected):
        """Answers map to booleans; Enter takes the default."""
        capture(console)
        monkeypatch.setattr(console._console, "input", lambda prompt: answer)
        assert console.confirm("Do you want to continue?", default=default) is expected

    def test_end_of_input(self, console, monkeypatch):
        """Closed stdin declines."""
        def eof(prompt):
            raise EOFError

        capture(console)
        monkeypatch.setattr(console._console, "input", eof)
        assert console.confirm("Do you want to continue?", default=True) is False
