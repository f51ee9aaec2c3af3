"""
Asynchronous git command runner.

Every git invocation in gitty goes through :class:`GitCommandRunner`. Two
entry points are offered:

* :meth:`GitCommandRunner.execute` is the lenient path used by repository
  queries. It returns stdout with trailing whitespace trimmed on success and
  an empty string on any failure, so a path outside a repository simply
  yields no data.
* :meth:`GitCommandRunner.run` returns a :class:`GitCommandResult` that keeps
  the exit status, stderr and timeout/cancellation flags for callers that need
  to tell failures apart.

Both accept an optional timeout and a :class:`CancellationToken`; timing out
or cancelling kills the child process.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CancellationToken:
    """Cooperative cancellation flag shared by the queries of one render."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Mark the token cancelled and fire registered callbacks once."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister


class GitCommandError(Exception):
    """Raised by :meth:`GitCommandResult.check` for a failed command."""

    def __init__(self, result: "GitCommandResult"):
        self.result = result
        if result.timed_out:
            reason = "timed out"
        elif result.cancelled:
            reason = "was cancelled"
        else:
            reason = f"failed (rc={result.returncode})"
        message = f"{' '.join(result.command)} {reason}"
        if result.stderr.strip():
            message += f": {result.stderr.strip()}"
        super().__init__(message)


@dataclass
class GitCommandResult:
    """Outcome of one git invocation."""

    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    @property
    def output(self) -> str:
        """Trimmed stdout on success, empty string otherwise."""
        return self.stdout.rstrip() if self.ok else ""

    def check(self) -> "GitCommandResult":
        if not self.ok:
            raise GitCommandError(self)
        return self


def get_git_environment(cwd: Path) -> Dict[str, str]:
    """Environment for git child processes.

    Marks ``cwd`` as a safe directory so repositories owned by another user
    (containers, sudo) can still be read, keeping any ``GIT_CONFIG_*`` entries
    the caller already exported.
    """
    env = os.environ.copy()

    try:
        count = int(env.get("GIT_CONFIG_COUNT", "0"))
    except ValueError:
        count = 0

    env[f"GIT_CONFIG_KEY_{count}"] = "safe.directory"
    env[f"GIT_CONFIG_VALUE_{count}"] = str(cwd.resolve())
    env["GIT_CONFIG_COUNT"] = str(count + 1)

    # never block on credential prompts
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def _kill(process: "asyncio.subprocess.Process") -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass


class GitCommandRunner:
    """Spawns the git executable and captures its standard output."""

    def __init__(self, executable: str = "git", timeout: Optional[float] = None):
        """Initialize the runner.

        Args:
            executable: git binary name or path
            timeout: Default timeout in seconds, ``None`` waits forever
        """
        self.executable = executable
        self.timeout = timeout

    async def run(
        self,
        args: Sequence[str],
        cwd: PathLike,
        timeout: Optional[float] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> GitCommandResult:
        """Run ``git <args>`` in ``cwd`` to completion."""
        command = [self.executable, *args]
        cwd = Path(cwd)
        logger.debug(f"git {' '.join(args)} (cwd={cwd})")

        if cancellation is not None and cancellation.is_cancelled:
            return GitCommandResult(command, -1, cancelled=True)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=get_git_environment(cwd),
            )
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            logger.warning(f"Failed to start {self.executable} in {cwd}: {e}")
            return GitCommandResult(command, 127, stderr=str(e))

        unregister = (
            cancellation.register(lambda: _kill(process))
            if cancellation is not None
            else None
        )
        effective_timeout = timeout if timeout is not None else self.timeout

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=effective_timeout
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            logger.warning(
                f"git {' '.join(args)} timed out after {effective_timeout}s"
            )
            return GitCommandResult(command, -1, timed_out=True)
        finally:
            if unregister is not None:
                unregister()

        result = GitCommandResult(
            command,
            process.returncode if process.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            cancelled=cancellation is not None and cancellation.is_cancelled,
        )
        if result.returncode != 0 and not result.cancelled:
            logger.debug(
                f"git {' '.join(args)} exited with {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        return result

    async def execute(
        self,
        args: Sequence[str],
        cwd: PathLike,
        timeout: Optional[float] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> str:
        """Run git and return trimmed stdout, or ``""`` on any failure."""
        result = await self.run(args, cwd, timeout=timeout, cancellation=cancellation)
        return result.output
