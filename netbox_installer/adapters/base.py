"""
Host adapter base: the contract between steps and the machine.

Steps and health checks never call subprocess or touch the filesystem
directly: they go through a Host. The real implementation runs commands
with sudo on the local machine; the mock keeps an in-memory Ubuntu host
so whole runs can be exercised without side effects.

run() NEVER raises for a failing command; the outcome is captured in
a CommandResult. Callers that need the command to succeed call
``.check()`` on the result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel


class CommandError(Exception):
    """A host command exited non-zero where success was required."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"'{' '.join(self.argv)}' exited with code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CommandResult(BaseModel):
    """Outcome of one host command."""

    argv: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self) -> CommandResult:
        """Return self, or raise CommandError when the command failed."""
        if not self.ok:
            raise CommandError(self.argv, self.returncode, self.stderr)
        return self


class Host(ABC):
    """Abstract machine the installer provisions.

    To add a new host kind:
        1. Subclass Host
        2. Implement every abstract method
        3. Pass an instance to build_context()
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Host identifier for logs (e.g. 'local', 'mock')."""

    @abstractmethod
    def run(
        self,
        argv: Sequence[str],
        *,
        sudo: bool = False,
        user: str | None = None,
        cwd: str | None = None,
        input: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """Run a command, optionally as root (sudo) or as another user.

        Secret material must be passed via ``input`` or ``env``,
        never inside ``argv``.
        """

    @abstractmethod
    def read_file(self, path: str) -> str | None:
        """Return file content, or None when the file does not exist."""

    @abstractmethod
    def write_file(
        self,
        path: str,
        content: str,
        *,
        mode: int = 0o644,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        """Write a file, applying mode and ownership before the content."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether a file, directory or link exists at path."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file or link. Missing paths are not an error."""

    @abstractmethod
    def symlink(self, target: str, link: str) -> None:
        """Create or replace a symbolic link at ``link`` pointing to ``target``."""

    @abstractmethod
    def file_age(self, path: str) -> float | None:
        """Seconds since the file was last modified, or None if missing."""

    @abstractmethod
    def is_superuser(self) -> bool:
        """Whether the installer itself runs as root."""

    @abstractmethod
    def os_release(self) -> dict[str, str]:
        """Parsed /etc/os-release (empty dict when unavailable)."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release KEY=VALUE lines, stripping optional quotes."""
    info: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        info[key.strip()] = value.strip().strip('"').strip("'")
    return info
