"""
Materializes a pinned local snapshot of a repository under the build root and
republishes it through the ``current`` alias.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from cfn_deploy.source.git import GitClient, is_checkout
from cfn_deploy.source.reference import SourceReference

logger = logging.getLogger(__name__)

CURRENT_ALIAS = "current"
GITIGNORE_CONTENT = """\
# ignore everything under build
# build/* should only contain generated data
# this file is auto-generated by cfn-deploy
*
"""


def ensure_build_root(build_root: Path) -> Path:
    """Create build_root and keep it out of version control."""
    build_root.mkdir(parents=True, exist_ok=True)
    (build_root / ".gitignore").write_text(GITIGNORE_CONTENT)
    return build_root


def repoint_alias(alias: Path, target: os.PathLike) -> None:
    """
    Atomically point the alias symlink at target.

    A temporary link is created next to the alias and renamed over it, so
    readers see either the old or the new snapshot, never a missing alias.
    """
    tmp = alias.with_name(f".{alias.name}.tmp")
    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()
    os.symlink(os.fspath(target), tmp)
    os.replace(tmp, alias)


class SourceResolver:
    """
    Resolves SourceReferences into directories under build_root.

    Snapshots are named after the repository and are never deleted; the
    ``current`` alias always points at the last successful resolution.
    """
    def __init__(self, project_root: Path, build_root: Path, git: Optional[GitClient] = None):
        self.project_root = Path(project_root)
        self.build_root = Path(build_root)
        self.git = git or GitClient()

    @property
    def alias(self) -> Path:
        return self.build_root / CURRENT_ALIAS

    def _clone_url(self, repository_url: str) -> str:
        # local paths are relative to the project, not to the build root
        local = self.project_root / repository_url
        if "://" not in repository_url and local.exists():
            return str(local.resolve())
        return repository_url

    def resolve(self, ref: SourceReference) -> Path:
        """
        Clone or fetch the repository, move it to the requested branch/commit
        and repoint the alias.

        Args:
            ref: The reference to resolve. "." publishes the project directory
                itself without any clone or fetch.
        Returns:
            The resolved snapshot directory.
        Raises:
            NoNameError: if no directory name can be derived from the URL.
            GitError: if clone, fetch, checkout or pull fails.
        """
        ensure_build_root(self.build_root)
        if ref.is_local:
            repoint_alias(self.alias, self.project_root.resolve())
            logger.info(f"Using project directory {self.project_root} as source")
            return self.project_root

        name = ref.destination_name(self.project_root.name)
        destination = self.build_root / name

        if is_checkout(destination):
            self.git.fetch(destination)
        else:
            self.git.clone(self._clone_url(ref.repository_url), ref.branch, destination)

        if ref.commit is not None:
            logger.info(f"Pinning {name} to {ref.branch}@{ref.commit}")
            self.git.checkout(destination, ref.branch, ref.commit)
        else:
            logger.info(f"Tracking latest of {name}:{ref.branch}")
            self.git.track(destination, ref.branch)
            self.git.pull(destination)

        repoint_alias(self.alias, name)
        return destination
