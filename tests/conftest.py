"""
Shared pytest fixtures for gitty tests.

Unit tests never spawn git: :class:`FakeGitRunner` answers commands from
canned responses keyed by argument prefix and records every call.
"""

import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from gitty.config import ConfigManager, ConfigService
from gitty.services.log_parser import FIELD_SEPARATOR
from gitty.utils.git_runner import (
    CancellationToken,
    GitCommandResult,
    GitCommandRunner,
)

Response = Union[str, Callable[[List[str]], str]]


class FakeGitRunner(GitCommandRunner):
    """GitCommandRunner serving canned output instead of running git."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[List[str]] = []
        self.cwds: List[str] = []
        self._responses: List[Tuple[Tuple[str, ...], Response, int]] = []

    def respond(self, *prefix: str, output: Response = "", returncode: int = 0) -> None:
        """Answer commands starting with ``prefix``; later registrations win."""
        self._responses.append((tuple(prefix), output, returncode))

    def calls_for(self, *prefix: str) -> List[List[str]]:
        return [call for call in self.calls if tuple(call[: len(prefix)]) == prefix]

    async def run(
        self,
        args: Sequence[str],
        cwd,
        timeout: Optional[float] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> GitCommandResult:
        args = list(args)
        self.calls.append(args)
        self.cwds.append(str(cwd))
        command = ["git", *args]

        if cancellation is not None and cancellation.is_cancelled:
            return GitCommandResult(command, -1, cancelled=True)

        for prefix, output, returncode in reversed(self._responses):
            if tuple(args[: len(prefix)]) == prefix:
                stdout = output(args) if callable(output) else output
                return GitCommandResult(command, returncode, stdout)

        return GitCommandResult(command, 128, stderr="fatal: not a git repository")


def _option(args: List[str], name: str, default: str = "") -> str:
    for arg in args:
        if arg.startswith(name + "="):
            return arg.split("=", 1)[1]
    return default


def make_commit(
    index: int,
    subject: Optional[str] = None,
    body: Optional[str] = None,
    refs: str = "",
    detail: str = "",
    author: str = "Ada Lovelace",
    email: str = "ada@example.com",
) -> Dict[str, str]:
    """Commit record fields as the fake ``git log`` prints them."""
    subject = subject if subject is not None else f"Commit number {index}"
    return {
        "subject": subject,
        "body": body if body is not None else f"{subject}\n\nDetails for {index}\n",
        "hash": f"{0xabc0000 + index:07x}",
        "refs": refs,
        "author": author,
        "email": email,
        "timestamp": str(1700000000 + index * 60),
        "reldate": f"{index} minutes ago",
        "detail": detail,
    }


def log_responder(commits: List[Dict[str, str]]) -> Callable[[List[str]], str]:
    """Fake ``git log`` honoring --skip/--max-count, for records and graphs."""

    def respond(args: List[str]) -> str:
        skip = int(_option(args, "--skip", "0"))
        count = int(_option(args, "--max-count", "0"))
        selected = commits[skip: skip + count] if count else commits[skip:]

        if "--graph" in args:
            lines = []
            for commit in selected:
                lines.append(f"* {commit['hash']}")
                lines.extend([f"| {commit['hash']}"] * 3)
            return "\n".join(lines)

        separator = _option(args, "--format").split("%s", 1)[0]
        records = []
        for commit in selected:
            fields = [
                commit["subject"],
                commit["body"],
                commit["hash"],
                commit["refs"],
                commit["author"],
                commit["email"],
                commit["timestamp"],
                commit["reldate"],
            ]
            records.append(
                separator + FIELD_SEPARATOR.join(fields) + FIELD_SEPARATOR + commit["detail"]
            )
        return "\n".join(records)

    return respond


@pytest.fixture
def fake_runner() -> FakeGitRunner:
    return FakeGitRunner()


@pytest.fixture
def config_service(tmp_path: Path) -> ConfigService:
    """In-memory configuration service backed by a temporary file path."""
    manager = ConfigManager(tmp_path / ".gitty" / "config.json")
    return ConfigService(manager, persist=False)


@pytest.fixture
def git_available() -> bool:
    return shutil.which("git") is not None


@pytest.fixture
def commits() -> Callable[..., Dict[str, str]]:
    """Factory for fake commit records, see :func:`make_commit`."""
    return make_commit


@pytest.fixture
def git_log() -> Callable[[List[Dict[str, str]]], Callable[[List[str]], str]]:
    """Factory for paginating fake ``git log`` responses."""
    return log_responder
