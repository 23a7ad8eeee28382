"""
System host: run commands and write files on the local machine.

This is the SINGLE PLACE where ``subprocess.run`` is called. Commands
that need root are prefixed with ``sudo``; commands run as the service
account use ``sudo -u USER``. The installer itself refuses to run as
root, so sudo credentials are primed once by pre-flight (``sudo -v``).

Security invariants:
- Secret material travels on stdin only, never in argv
- argv is logged at DEBUG; stdin never is
- Files are created with their final mode/owner before content lands
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Sequence
from pathlib import Path

from netbox_installer.adapters.base import CommandResult, Host, parse_os_release

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = "/etc/os-release"

# Long enough for apt upgrades and database migrations
DEFAULT_TIMEOUT = 1800


class SystemHost(Host):
    """The local Ubuntu machine, driven through subprocess and sudo."""

    def __init__(self, default_timeout: int = DEFAULT_TIMEOUT):
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "local"

    # ── Commands ────────────────────────────────────────────────

    def _wrap(
        self,
        argv: Sequence[str],
        sudo: bool,
        user: str | None,
        env: dict[str, str] | None,
    ) -> list[str]:
        cmd = list(argv)
        if env:
            cmd = ["env", *(f"{k}={v}" for k, v in env.items()), *cmd]
        if user:
            return ["sudo", "-u", user, "--", *cmd]
        if sudo and not self.is_superuser():
            return ["sudo", "--", *cmd]
        return cmd

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
        cmd = self._wrap(argv, sudo, user, env)
        timeout = timeout or self._default_timeout

        logger.debug("Executing: %s (cwd=%s)", " ".join(cmd), cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                argv=list(argv),
                returncode=124,
                stderr=f"Command timed out after {timeout}s",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except FileNotFoundError as e:
            return CommandResult(
                argv=list(argv),
                returncode=127,
                stderr=f"Command not found: {e.filename or cmd[0]}",
            )
        except OSError as e:
            logger.exception("Subprocess error: %s", cmd)
            return CommandResult(argv=list(argv), returncode=126, stderr=str(e))

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            logger.debug(
                "Command failed (exit %d): %s", result.returncode, result.stderr[-500:]
            )

        return CommandResult(
            argv=list(argv),
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            duration_ms=elapsed_ms,
        )

    # ── Filesystem ──────────────────────────────────────────────

    def read_file(self, path: str) -> str | None:
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except PermissionError:
            result = self.run(["cat", path], sudo=True)
            return result.stdout if result.ok else None

    def write_file(
        self,
        path: str,
        content: str,
        *,
        mode: int = 0o644,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        # Restrict first: `install` creates an empty file with the final
        # mode and owner, then the content is streamed in on stdin.
        install = ["install", "-m", f"{mode:04o}"]
        if owner:
            install += ["-o", owner, "-g", group or owner]
        self.run([*install, "/dev/null", path], sudo=True).check()
        # An owned file is filled by its owner: with fs.protected_regular,
        # root may not open another user's file in a sticky dir like /tmp.
        if owner:
            self.run(["tee", path], user=owner, input=content).check()
        else:
            self.run(["tee", path], sudo=True, input=content).check()
        logger.debug("Wrote %s (mode=%04o owner=%s)", path, mode, owner or "root")

    def exists(self, path: str) -> bool:
        if os.path.lexists(path):
            return True
        parent = os.path.dirname(path) or "/"
        if os.path.isdir(parent) and os.access(parent, os.R_OK | os.X_OK):
            return False
        return self.run(["test", "-e", path], sudo=True).ok

    def remove(self, path: str) -> None:
        self.run(["rm", "-f", path], sudo=True).check()

    def symlink(self, target: str, link: str) -> None:
        self.run(["ln", "-sfn", target, link], sudo=True).check()

    def file_age(self, path: str) -> float | None:
        try:
            mtime = os.stat(path).st_mtime
        except FileNotFoundError:
            return None
        except PermissionError:
            result = self.run(["stat", "-c", "%Y", path], sudo=True)
            if not result.ok:
                return None
            mtime = float(result.stdout.strip())
        return max(0.0, time.time() - mtime)

    # ── Identity ────────────────────────────────────────────────

    def is_superuser(self) -> bool:
        return os.geteuid() == 0

    def os_release(self) -> dict[str, str]:
        try:
            text = Path(OS_RELEASE_PATH).read_text(encoding="utf-8")
        except OSError:
            return {}
        return parse_os_release(text)
