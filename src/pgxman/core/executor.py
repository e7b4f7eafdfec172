"""Command execution with dry-run and cancellation support.

Provides:
- Command execution with captured or streamed output
- Privilege elevation via sudo
- Cooperative cancellation of child processes
- Atomic file writes
"""

import contextlib
import os
import secrets
import shlex
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Optional, Union

from pgxman.core.context import ExecutionContext
from pgxman.core.exceptions import ExecutionError, OperationCancelledError


# Seconds between cancellation checks while a child process runs
POLL_INTERVAL = 0.1
# Seconds to wait after SIGTERM before killing a cancelled child
TERMINATE_GRACE = 5.0
# apt and dpkg output may carry bytes from any locale
OUTPUT_ENCODING = "utf-8"


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.return_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class AtomicFileWriter:
    """Atomic file writer using temp file and rename.

    Ensures file is either completely written or not modified at all.
    """

    def __init__(self, target_path: Path, permissions: int = 0o644) -> None:
        self.target_path = Path(target_path)
        self.permissions = permissions

    @contextlib.contextmanager
    def open(self, mode: str = "w") -> Generator:
        """Open for atomic writing.

        Usage:
            with AtomicFileWriter(path).open() as f:
                f.write("content")
            # File is atomically replaced here
        """
        self.target_path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)

        # Temp file in same directory for atomic rename
        tmp_path = self.target_path.with_name(
            f".{self.target_path.name}.tmp_{secrets.token_hex(8)}"
        )

        success = False
        fd = None

        try:
            fd = os.open(
                tmp_path,
                os.O_WRONLY | os.O_CREAT | os.O_EXCL,
                self.permissions,
            )

            with os.fdopen(fd, mode) as f:
                fd = None  # fdopen takes ownership
                yield f
                f.flush()
                os.fsync(f.fileno())

            os.chmod(tmp_path, self.permissions)
            os.rename(tmp_path, self.target_path)
            success = True

        finally:
            if fd is not None:
                os.close(fd)
            if not success and tmp_path.exists():
                with contextlib.suppress(OSError):
                    tmp_path.unlink()


class CommandExecutor:
    """Command execution with dry-run support and output capture.

    Features:
    - Dry-run mode shows what would happen
    - Output capture for error classification
    - Streaming (tee) of child output to the console
    - Cancellation through ctx.cancel_event
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        stream: bool = False,
        sudo: bool = False,
        timeout: Optional[float] = None,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """Execute a command.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            check: Raise exception on non-zero exit
            stream: Echo output line by line while capturing it
            sudo: Prefix the command with sudo
            timeout: Command timeout in seconds
            env: Additional environment variables
            cwd: Working directory

        Returns:
            CommandResult with output. Streamed output is merged into stdout.

        Raises:
            ExecutionError: If command fails and check=True
            OperationCancelledError: If ctx.cancel_event is set while running
        """
        if sudo:
            command = ["sudo"] + command

        if description:
            self.ctx.console.step(description)

        cmd_display = shlex.join(command)
        self.ctx.console.debug(f"Running: {cmd_display}")

        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(f"Run: {cmd_display}")
            return CommandResult(command=command, return_code=0, stdout="", stderr="")

        self.ctx.check_cancelled(description or cmd_display)

        run_env = None
        if env:
            run_env = os.environ.copy()
            run_env.update(env)

        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if stream else subprocess.PIPE,
                text=True,
                encoding=OUTPUT_ENCODING,
                errors="replace",
                env=run_env,
                cwd=cwd,
            )
        except OSError as e:
            raise ExecutionError(
                f"Cannot run command: {cmd_display}",
                command=cmd_display,
                details=[str(e)],
            ) from e

        if stream:
            stdout, stderr = self._wait_streaming(process, cmd_display, timeout)
        else:
            stdout, stderr = self._wait_captured(process, cmd_display, timeout)

        result = CommandResult(
            command=command,
            return_code=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )

        if check and not result.success:
            raise ExecutionError(
                f"Command failed: {description or cmd_display}",
                command=cmd_display,
                return_code=result.return_code,
                stderr=(result.stderr or result.stdout).strip() or None,
            )

        return result

    def _wait_captured(
        self,
        process: subprocess.Popen,
        cmd_display: str,
        timeout: Optional[float],
    ) -> tuple[str, str]:
        deadline = time.monotonic() + timeout if timeout else None
        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
                return stdout or "", stderr or ""
            except subprocess.TimeoutExpired:
                self._check_interrupt(process, cmd_display, deadline, timeout)

    def _wait_streaming(
        self,
        process: subprocess.Popen,
        cmd_display: str,
        timeout: Optional[float],
    ) -> tuple[str, str]:
        lines: list[str] = []

        def pump() -> None:
            for line in process.stdout:
                line = line.rstrip("\n")
                lines.append(line)
                self.ctx.console.output_line(line)

        reader = threading.Thread(target=pump, daemon=True)
        reader.start()

        deadline = time.monotonic() + timeout if timeout else None
        while True:
            try:
                process.wait(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                self._check_interrupt(process, cmd_display, deadline, timeout)

        reader.join()
        process.stdout.close()
        return "\n".join(lines), ""

    def _check_interrupt(
        self,
        process: subprocess.Popen,
        cmd_display: str,
        deadline: Optional[float],
        timeout: Optional[float],
    ) -> None:
        if self.ctx.cancelled:
            self._terminate(process)
            raise OperationCancelledError(f"Cancelled: {cmd_display}")
        if deadline is not None and time.monotonic() > deadline:
            self._terminate(process)
            raise ExecutionError(
                f"Command timed out after {timeout}s: {cmd_display}",
                command=cmd_display,
            )

    def _terminate(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def write_file(
        self,
        path: Path,
        content: Union[str, bytes],
        *,
        description: Optional[str] = None,
        permissions: int = 0o644,
        sudo: bool = False,
    ) -> None:
        """Write content to a file atomically.

        With sudo the content is staged in a temp file and moved into place
        with `sudo install`, so the caller does not need write access to the
        destination directory.

        Args:
            path: Destination path
            content: File content (text or bytes)
            description: Human-readable description
            permissions: File permissions
            sudo: Install the file with elevated privileges
        """
        desc = description or f"Write {path}"
        self.ctx.console.verbose(desc)

        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(f"Write {len(content)} bytes to {path}")
            if self.ctx.is_verbose and isinstance(content, str):
                preview = content[:500] + "..." if len(content) > 500 else content
                self.ctx.console.print(preview, style="dim", markup=False)
            return

        self.ctx.check_cancelled(desc)
        mode = "wb" if isinstance(content, bytes) else "w"

        if not sudo:
            try:
                with AtomicFileWriter(path, permissions=permissions).open(mode) as f:
                    f.write(content)
            except OSError as e:
                raise ExecutionError(
                    f"Cannot write {path}",
                    hint="Check permissions or re-run with --sudo",
                    details=[str(e)],
                ) from e
            return

        fd, tmp_name = tempfile.mkstemp(prefix="pgxman-")
        try:
            with os.fdopen(fd, mode) as f:
                f.write(content)
            self.run(
                ["install", "-m", f"{permissions:04o}", "-D", tmp_name, str(path)],
                sudo=True,
            )
        finally:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
