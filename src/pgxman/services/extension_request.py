"""Parsing of extension arguments.

An argument is either a path to a local package file or a registry
reference of the form NAME[=VERSION].
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from pgxman.core.exceptions import MalformedRequestError


LATEST = "latest"

# NAME, then optionally =VERSION. Neither part may contain '@', and the
# version may not contain a second '='.
EXTENSION_PATTERN = re.compile(r"^([^=@\s]+)(?:=([^=@]*))?$")


@dataclass(frozen=True)
class ExtensionRequest:
    """A single extension requested on the command line.

    Exactly one of ``name`` and ``path`` is set. ``version`` is None when
    no version was written and "" when written as ``name=``; both resolve
    to the latest release, as does the literal "latest".
    """

    name: Optional[str] = None
    version: Optional[str] = None
    path: Optional[Path] = None
    pg_version: Optional[str] = None
    overwrite: bool = False

    def __post_init__(self) -> None:
        if (self.name is None) == (self.path is None):
            raise ValueError("ExtensionRequest needs exactly one of name or path")

    @property
    def is_local(self) -> bool:
        return self.path is not None

    @property
    def wants_latest(self) -> bool:
        return self.version is None or self.version in ("", LATEST)

    def __str__(self) -> str:
        if self.path is not None:
            return str(self.path)
        if self.version is None:
            return self.name
        return f"{self.name}={self.version}"


def parse_request(
    arg: str,
    pg_version: Optional[str] = None,
    overwrite: bool = False,
) -> ExtensionRequest:
    """Parse one command-line argument.

    An argument naming an existing file is always a local request, whatever
    it looks like.

    Raises:
        MalformedRequestError: If the argument is neither a file nor NAME[=VERSION]
    """
    candidate = Path(arg)
    if arg and candidate.exists():
        return ExtensionRequest(
            path=candidate.resolve(),
            pg_version=pg_version,
            overwrite=overwrite,
        )

    match = EXTENSION_PATTERN.match(arg)
    if match is None:
        raise MalformedRequestError(arg)

    return ExtensionRequest(
        name=match.group(1),
        version=match.group(2),
        pg_version=pg_version,
        overwrite=overwrite,
    )


def parse_requests(
    args: Iterable[str],
    pg_version: Optional[str] = None,
    overwrite: bool = False,
) -> list[ExtensionRequest]:
    """Parse arguments in order. The first malformed argument raises."""
    return [parse_request(arg, pg_version=pg_version, overwrite=overwrite) for arg in args]
