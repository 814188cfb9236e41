"""
Thin git client used to materialize and commit source trees.

All interaction with the ``git`` binary goes through :func:`subprocess.run`;
failures are raised as :class:`~cfn_deploy.errors.GitError` with the command
and its stderr.
"""
from __future__ import annotations

import getpass
import logging
import subprocess
import time
from pathlib import Path
from typing import List, Mapping, Optional

from cfn_deploy.errors import GitError

logger = logging.getLogger(__name__)

AUTO_COMMIT_PREFIX = "__auto_update__"
TRUNK_BRANCH = "trunk"


def auto_commit_message() -> str:
    return f"{AUTO_COMMIT_PREFIX}:{int(time.time())}"


def is_checkout(path: Path) -> bool:
    return (path / ".git").exists()


class GitClient:
    """
    Runs git commands in a given working directory.
    """
    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self.env = dict(env) if env is not None else None

    def run(self, args: List[str], cwd: Path, check: bool = True) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        logger.debug(f"Running {' '.join(cmd)} in {cwd}")
        try:
            return subprocess.run(
                cmd,
                cwd=str(cwd),
                env=self.env,
                capture_output=True,
                text=True,
                check=check,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise GitError(f"git command failed: {' '.join(cmd)}\nExit code {exc.returncode}: {stderr}") from exc
        except FileNotFoundError as exc:
            raise GitError("git executable not found. Ensure git is installed and on PATH.") from exc

    def clone(self, url: str, branch: str, destination: Path) -> None:
        logger.info(f"Cloning {url} (branch {branch}) into {destination}")
        self.run(["clone", "-b", branch, url, str(destination)], cwd=destination.parent)

    def fetch(self, repo: Path) -> None:
        logger.info(f"Fetching updates in {repo}")
        self.run(["fetch"], cwd=repo)

    def checkout(self, repo: Path, branch: str, start_point: Optional[str] = None) -> None:
        """Force the local branch pointer to start_point (or the current HEAD)."""
        args = ["checkout", "-B", branch]
        if start_point:
            args.append(start_point)
        self.run(args, cwd=repo)

    def track(self, repo: Path, branch: str, remote: str = "origin") -> None:
        """Force the local branch to the fetched remote tip and make it track that branch."""
        self.run(["checkout", "--track", "-B", branch, f"{remote}/{branch}"], cwd=repo)

    def pull(self, repo: Path) -> None:
        self.run(["pull"], cwd=repo)

    def ensure_identity(self, repo: Path) -> None:
        """Set a local user.name/user.email when git has none configured."""
        user = getpass.getuser()
        if not self.run(["config", "user.name"], cwd=repo, check=False).stdout.strip():
            self.run(["config", "user.name", user], cwd=repo)
        if not self.run(["config", "user.email"], cwd=repo, check=False).stdout.strip():
            self.run(["config", "user.email", f"{user}@localhost"], cwd=repo)

    def auto_commit(self, repo: Path) -> bool:
        """
        Stage and commit every change in repo.

        Returns:
            True if a commit was created, False when the tree was clean.
        """
        if not is_checkout(repo):
            raise GitError(f"Not a git repository (no .git directory): {repo}")
        self.ensure_identity(repo)
        self.run(["add", "."], cwd=repo)
        if self.run(["diff-index", "--quiet", "HEAD"], cwd=repo, check=False).returncode == 0:
            logger.debug(f"Nothing to commit in {repo}")
            return False
        message = auto_commit_message()
        self.run(["commit", "-am", message], cwd=repo)
        logger.info(f"Committed local changes in {repo} ({message})")
        return True

    def init(self, repo: Path) -> None:
        logger.info(f"Initializing git repository in {repo}")
        self.run(["config", "--global", "user.useConfigOnly", "true"], cwd=repo)
        self.run(["init"], cwd=repo)

    def init_from_remote(self, repo: Path, url: str, branch: str) -> None:
        """
        Turn an existing directory into a checkout of url/branch, keeping the
        local files as an unrelated trunk history merged into branch.
        """
        self.init(repo)
        self.run(["checkout", "-b", TRUNK_BRANCH], cwd=repo)
        self.run(["remote", "add", "origin", url], cwd=repo)
        self.fetch(repo)
        self.auto_commit(repo)
        self.run(["checkout", branch], cwd=repo)
        self.run(
            ["merge", TRUNK_BRANCH, "--allow-unrelated-histories", "-m", auto_commit_message()],
            cwd=repo,
        )
