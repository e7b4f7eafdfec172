"""Console output for pgxman using Rich.

Messages, result lines and prompts go to stdout; warnings and errors go
to stderr. Child process output from apt is echoed line by line and is
never interpreted as markup.
"""

from enum import IntEnum
from typing import Any, Iterable

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax


PGX_URL = "https://pgx.sh"


class Verbosity(IntEnum):
    """Output verbosity levels."""
    QUIET = 0    # Errors only
    NORMAL = 1   # Results, steps and apt output
    VERBOSE = 2  # Failure output and retries
    DEBUG = 3    # Registry calls and every command run


class Console:
    """Centralized console output with Rich integration."""

    def __init__(self) -> None:
        self._console = RichConsole(highlight=False)
        self._err_console = RichConsole(stderr=True, highlight=False)
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self.no_color = False

    def configure(
        self,
        verbosity: int = 1,
        dry_run: bool = False,
        no_color: bool = False,
    ) -> None:
        """Apply the global CLI flags."""
        self.verbosity = Verbosity(max(min(verbosity, Verbosity.DEBUG), Verbosity.QUIET))
        self.dry_run = dry_run
        self.no_color = no_color
        if no_color:
            self._console = RichConsole(highlight=False, no_color=True)
            self._err_console = RichConsole(stderr=True, highlight=False, no_color=True)

    def info(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            self._console.print(f"[green][INFO][/green] {message}")

    def success(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            self._console.print(f"[green][OK][/green] {message}")

    def warn(self, message: str) -> None:
        self._err_console.print(f"[yellow][WARN][/yellow] {message}")

    def error(self, message: str) -> None:
        self._err_console.print(f"[red][ERROR][/red] {message}")

    def debug(self, message: str) -> None:
        if self.verbosity >= Verbosity.DEBUG:
            self._console.print(f"[cyan][DEBUG][/cyan] {escape(message)}")

    def verbose(self, message: str) -> None:
        if self.verbosity >= Verbosity.VERBOSE:
            self._console.print(f"[dim]{escape(message)}[/dim]")

    def step(self, message: str) -> None:
        """Announce the package manager step about to run."""
        if self.verbosity >= Verbosity.NORMAL:
            self._console.print(f"[blue]->[/blue] {escape(message)}")

    def dry_run_msg(self, message: str) -> None:
        if self.dry_run:
            self._console.print(f"[blue][DRY-RUN][/blue] Would: {escape(message)}")

    def hint(self, message: str) -> None:
        self._console.print(f"[cyan]Hint:[/cyan] {message}")

    def result(self, name: str) -> None:
        """Print ``[✔] name: https://pgx.sh/name`` for an installed extension."""
        name = escape(name)
        self._console.print(f"\\[[green]✔[/green]] {name}: {PGX_URL}/{name}")

    def output_line(self, line: str) -> None:
        """Echo one line of apt output unless quiet."""
        if self.verbosity >= Verbosity.NORMAL:
            self._console.print(line, markup=False, soft_wrap=True)

    def listing(self, title: str, items: Iterable[str]) -> None:
        """Print a title followed by one indented line per item."""
        self._console.print(title, markup=False)
        for item in items:
            self._console.print(f"  {item}", markup=False)

    def print(self, message: Any = "", **kwargs: Any) -> None:
        self._console.print(message, **kwargs)

    def yaml(self, yaml_text: str, title: str = "Configuration") -> None:
        syntax = Syntax(yaml_text, "yaml", theme="monokai", line_numbers=False)
        self._console.print(Panel(syntax, title=title, border_style="cyan"))

    def summary(self, title: str, items: dict[str, Any]) -> None:
        """Print key-value pairs in a panel."""
        content = "\n".join(f"[bold]{key}:[/bold] {escape(str(value))}" for key, value in items.items())
        self._console.print(Panel(content, title=title, border_style="blue"))

    def status(self, message: str) -> Any:
        """Spinner shown while the registry is queried."""
        return self._console.status(message, spinner="dots")

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question.

        Args:
            message: Question to ask
            default: Answer used when the user just presses Enter

        Returns:
            True if confirmed. End of input counts as no.
        """
        suffix = "[Y/n]" if default else "[y/N]"
        try:
            response = self._console.input(f"{message} {escape(suffix)}: ").strip().lower()
        except EOFError:
            return False

        if not response:
            return default
        return response in ("y", "yes")


# Global console instance
console = Console()
