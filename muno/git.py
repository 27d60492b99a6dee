"""Thin wrappers around git CLI commands."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable, Protocol

from .exceptions import GitCommandError, GitTimeoutError

logger = logging.getLogger(__name__)


class GitClient(Protocol):
    """The git operations the tree needs. Tests substitute a fake."""

    def clone(
        self,
        url: str,
        dest: Path,
        *,
        branch: str | None = None,
        depth: int | None = None,
        timeout: float | None = None,
    ) -> None: ...

    def pull(self, path: Path, *, timeout: float | None = None) -> None: ...

    def push(self, path: Path) -> None: ...

    def commit(self, path: Path, message: str) -> None: ...

    def status(self, path: Path) -> str: ...

    def current_branch(self, path: Path) -> str: ...


def run_git(
    args: Iterable[str],
    *,
    cwd: Path,
    raise_on_error: bool = True,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Execute a git command and optionally raise on failure."""

    cmd = ["git", *args]
    logger.debug("Running %s in %s", " ".join(cmd), cwd)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout or None,
        )
    except subprocess.TimeoutExpired as exc:
        raise GitTimeoutError(cmd, float(timeout or 0)) from exc
    if raise_on_error and proc.returncode != 0:
        raise GitCommandError(cmd, proc.returncode, proc.stderr)
    return proc


class SubprocessGit:
    """``GitClient`` backed by the ``git`` executable."""

    def clone(
        self,
        url: str,
        dest: Path,
        *,
        branch: str | None = None,
        depth: int | None = None,
        timeout: float | None = None,
    ) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone"]
        if branch:
            args.extend(["--branch", branch])
        if depth:
            args.extend(["--depth", str(depth)])
        args.extend([url, str(dest)])
        run_git(args, cwd=dest.parent, timeout=timeout)

    def pull(self, path: Path, *, timeout: float | None = None) -> None:
        run_git(["pull", "--ff-only"], cwd=path, timeout=timeout)

    def push(self, path: Path) -> None:
        run_git(["push"], cwd=path)

    def commit(self, path: Path, message: str) -> None:
        run_git(["add", "--all"], cwd=path)
        proc = run_git(["commit", "-m", message], cwd=path, raise_on_error=False)
        if proc.returncode != 0 and "nothing to commit" not in proc.stdout:
            raise GitCommandError(["git", "commit", "-m", message], proc.returncode, proc.stderr or proc.stdout)

    def status(self, path: Path) -> str:
        return run_git(["status", "--porcelain"], cwd=path).stdout

    def current_branch(self, path: Path) -> str:
        proc = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=path)
        return proc.stdout.strip()
