"""
Parsing of composite repository references.

A reference is a repository URL (or local path) with the branch and commit
appended as query parameters, e.g.::

    https://github.com/group/repo.git?branch=dev&commit=abc123
"""
from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Optional

from cfn_deploy.errors import NoNameError

DEFAULT_BRANCH = "master"
LOCAL_REPOSITORY = "."

_NAME_ILLEGAL_RE = re.compile(r"[^A-Za-z0-9_-]")
_PARAMETER_VALUE = r"[A-Za-z0-9-]*"


def _basename(path: str) -> str:
    return posixpath.basename(path.rstrip("/")) or path


def destination_name(repository_url: str, script_dir_name: str) -> str:
    """
    Return a clean directory name for a repository: the last path segment
    without ".git" and without characters outside [A-Za-z0-9_-].

    Args:
        repository_url: Repository URL or local path, without query parameters.
        script_dir_name: Name returned when the repository is "." (the project
            directory itself).
    Raises:
        NoNameError: when no name can be derived.
    """
    base = _basename(repository_url)
    name = _NAME_ILLEGAL_RE.sub("", re.sub(r"\.git$", "", base))
    if name:
        return name
    if base == LOCAL_REPOSITORY:
        return script_dir_name
    raise NoNameError(f"Cannot derive a repository name from {repository_url!r}")


def _query_parameter(query: str, key: str) -> Optional[str]:
    matches = re.findall(rf"(?:^|[^A-Za-z0-9]){key}=({_PARAMETER_VALUE})", query)
    # last occurrence wins, empty means not given
    if matches and matches[-1]:
        return matches[-1]
    return None


@dataclass(frozen=True)
class SourceReference:
    repository_url: str
    branch: str = DEFAULT_BRANCH
    commit: Optional[str] = None

    @classmethod
    def parse(cls, ref: str) -> "SourceReference":
        """
        Split a composite reference into URL, branch and commit.

        A missing or empty branch defaults to "master". A missing or empty
        commit stays None, which means "track the latest commit of the branch".
        """
        repository_url = ref.split("?", 1)[0]
        base = _basename(ref)
        query = base.split("?", 1)[1] if "?" in base else ""
        branch = _query_parameter(query, "branch") or DEFAULT_BRANCH
        commit = _query_parameter(query, "commit")
        return cls(repository_url=repository_url, branch=branch, commit=commit)

    @property
    def is_local(self) -> bool:
        """True when the project directory is its own repository."""
        return self.repository_url == LOCAL_REPOSITORY

    def destination_name(self, script_dir_name: str) -> str:
        return destination_name(self.repository_url, script_dir_name)

    def namestring(self, script_dir_name: str) -> str:
        """Repository name, branch and commit, used to seed the application stack name."""
        name = self.destination_name(script_dir_name)
        return f"{name}-{self.branch}-{self.commit or 'latest'}"
