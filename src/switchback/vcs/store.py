"""Version-control backend for archived configurations.

The orchestrator only needs a handful of operations, captured by
:class:`VersionStore`. :class:`GitStore` implements them with one bare
repository per group as the shared store and a clone of it as the working
checkout; every commit is pushed back to the store.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

GIT_USER_NAME = "switchback"
GIT_USER_EMAIL = "switchback@localhost"


class VersionStoreError(RuntimeError):
    """Raised when a version-control operation fails."""


class VersionStore(Protocol):
    def init_store(self, path: Path) -> None: ...

    def checkout(self, store_path: Path, work_dir: Path) -> None: ...

    def add(self, path: Path) -> None: ...

    def commit(self, path: Path, message: str) -> str | None: ...

    def diff_against_head(self, path: Path) -> str: ...

    def cat_head(self, path: Path) -> str: ...


class GitStore:
    """Git implementation of :class:`VersionStore` driven through the git CLI."""

    def __init__(self, git: str = "git", timeout: float = 60.0) -> None:
        self.git = git
        self.timeout = timeout

    def _run_git(self, *args: str, cwd: Path | None = None, check: bool = True) -> subprocess.CompletedProcess:
        """Run a git command, optionally inside ``cwd``."""
        cmd = [self.git]
        if cwd is not None:
            cmd += ["-C", str(cwd)]
        cmd += list(args)
        logger.debug("Running: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise VersionStoreError(f"git {args[0]} timed out after {self.timeout:.0f}s") from exc
        except OSError as exc:
            raise VersionStoreError(f"unable to run git: {exc}") from exc

        if check and result.returncode != 0:
            logger.error("Git command failed: %s", result.stderr.strip())
            raise VersionStoreError(f"git {args[0]} failed: {result.stderr.strip()}")

        return result

    def _has_head(self, repo: Path) -> bool:
        result = self._run_git("rev-parse", "--verify", "--quiet", "HEAD", cwd=repo, check=False)
        return result.returncode == 0

    def init_store(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._run_git("init", "--bare", "--quiet", str(path))
        logger.info("Initialized store at %s", path)

    def checkout(self, store_path: Path, work_dir: Path) -> None:
        work_dir.parent.mkdir(parents=True, exist_ok=True)
        self._run_git("clone", "--quiet", str(store_path), str(work_dir))
        self._run_git("config", "user.name", GIT_USER_NAME, cwd=work_dir)
        self._run_git("config", "user.email", GIT_USER_EMAIL, cwd=work_dir)
        logger.info("Checked out %s into %s", store_path, work_dir)

    def add(self, path: Path) -> None:
        self._run_git("add", "--", path.name, cwd=path.parent)

    def commit(self, path: Path, message: str) -> str | None:
        """Commit ``path`` and push it to the store.

        Returns the commit hash, or None when the file has no changes.
        """
        repo = path.parent
        status = self._run_git("status", "--porcelain", "--", path.name, cwd=repo)
        if not status.stdout.strip():
            logger.debug("No changes to commit for %s", path)
            return None
        if status.stdout.startswith("??"):
            # on disk but never staged, e.g. after an interrupted first run
            self._run_git("add", "--", path.name, cwd=repo)

        self._run_git("commit", "--quiet", "-m", message, "--", path.name, cwd=repo)
        commit_hash = self._run_git("rev-parse", "HEAD", cwd=repo).stdout.strip()
        self._run_git("push", "--quiet", "origin", "HEAD", cwd=repo)

        logger.info("Committed: %s - %s", commit_hash[:8], message)
        return commit_hash

    def diff_against_head(self, path: Path) -> str:
        repo = path.parent
        if not self._has_head(repo):
            # nothing committed yet: everything in the file is pending
            result = self._run_git("diff", "--no-index", "--", "/dev/null", path.name, cwd=repo, check=False)
            return result.stdout
        return self._run_git("diff", "HEAD", "--", path.name, cwd=repo).stdout

    def cat_head(self, path: Path) -> str:
        return self._run_git("show", f"HEAD:./{path.name}", cwd=path.parent).stdout
