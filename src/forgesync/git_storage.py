"""Local git storage collaborator.

The reconciliation layer needs exactly two things from git: initialise a
working copy for the repository (clone URL carries the token) and resolve a
branch name to its current commit id. ``LocalGitStorage`` shells out to the
``git`` binary for both; in remote-only mode (``clone=False``) no working copy
is created and branches are resolved with ``git ls-remote``.
"""

from __future__ import annotations

import shutil
import subprocess  # nosec B404 - subprocess is required for git invocation
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .errors import ForgeSyncError, redact
from .logging import get_logger


class GitStorage(Protocol):
    def init_repo(self, url: str, *, default_branch: str, clone_submodules: bool = False) -> None: ...

    def get_branch_commit(self, branch_name: str) -> str | None: ...


def _git_command(*args: str) -> list[str]:
    git_path = shutil.which("git")
    return [git_path if git_path else "git", *args]


@dataclass
class LocalGitStorage:
    workdir: Path = field(default_factory=lambda: Path(".forgesync/repo"))
    clone: bool = False
    _url: str | None = field(default=None, init=False, repr=False)

    def _run(self, *args: str, cwd: Path | None = None) -> str:
        cmd = _git_command(*args)
        try:
            return subprocess.check_output(  # nosec B603 - arguments are controlled
                cmd, cwd=cwd, text=True, stderr=subprocess.STDOUT
            )
        except subprocess.CalledProcessError as exc:
            raise ForgeSyncError(
                redact(f"Command failed: {' '.join(cmd)}: {exc.output}")
            ) from exc
        except OSError as exc:
            raise ForgeSyncError(redact(f"Could not run {' '.join(cmd)}: {exc}")) from exc

    def init_repo(self, url: str, *, default_branch: str, clone_submodules: bool = False) -> None:
        self._url = url
        if not self.clone:
            get_logger().debug("git storage in remote-only mode", branch=default_branch)
            return
        if (self.workdir / ".git").exists():
            self._run("remote", "set-url", "origin", url, cwd=self.workdir)
            self._run("fetch", "--prune", "origin", cwd=self.workdir)
            return
        self.workdir.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone", "--no-checkout", "--branch", default_branch]
        if clone_submodules:
            args.append("--recurse-submodules")
        self._run(*args, url, str(self.workdir))
        get_logger().log_operation("git_clone", workdir=str(self.workdir))

    def get_branch_commit(self, branch_name: str) -> str | None:
        if self._url is None:
            raise ForgeSyncError("git storage used before init_repo")
        try:
            if self.clone:
                out = self._run("rev-parse", f"refs/remotes/origin/{branch_name}", cwd=self.workdir)
            else:
                out = self._run("ls-remote", self._url, f"refs/heads/{branch_name}")
        except ForgeSyncError as exc:
            get_logger().debug("branch lookup failed", branch=branch_name, error=str(exc))
            return None
        sha = out.strip().split()[0] if out.strip() else ""
        return sha or None


__all__ = ["GitStorage", "LocalGitStorage"]
