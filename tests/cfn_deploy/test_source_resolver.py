import os
import shutil
import subprocess
from pathlib import Path

import pytest

from cfn_deploy.errors import GitError
from cfn_deploy.source.git import AUTO_COMMIT_PREFIX, GitClient
from cfn_deploy.source.reference import SourceReference
from cfn_deploy.source.resolver import SourceResolver, ensure_build_root, repoint_alias

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo: Path, *args: str) -> str:
    out = subprocess.run(
        ["git", "-c", "user.name=test", "-c", "user.email=test@localhost", *args],
        cwd=repo, check=True, capture_output=True, text=True,
    )
    return out.stdout.strip()


def _commit_file(repo: Path, content: str) -> str:
    (repo / "app").mkdir(exist_ok=True)
    (repo / "app" / "main.yaml").write_text(content)
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", content)
    return _git(repo, "rev-parse", "HEAD")


@pytest.fixture
def origin(tmp_path):
    repo = tmp_path / "origin-repo"
    repo.mkdir()
    _git(repo, "init")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/master")
    return repo


def test_ensure_build_root_is_idempotent(tmp_path):
    build = tmp_path / "build"
    ensure_build_root(build)
    ensure_build_root(build)
    assert (build / ".gitignore").read_text().splitlines()[-1] == "*"


def test_repoint_alias_replaces_existing_link(tmp_path):
    (tmp_path / "one").mkdir()
    (tmp_path / "two").mkdir()
    alias = tmp_path / "current"
    repoint_alias(alias, "one")
    repoint_alias(alias, "two")
    assert os.readlink(alias) == "two"
    assert not (tmp_path / ".current.tmp").exists()


def test_resolve_pinned_then_latest(tmp_path, origin):
    first = _commit_file(origin, "one")
    _commit_file(origin, "two")

    project = tmp_path / "project"
    project.mkdir()
    resolver = SourceResolver(project, project / "build")

    pinned = SourceReference(str(origin), "master", first)
    snapshot = resolver.resolve(pinned)
    assert snapshot == project / "build" / "origin-repo"
    assert os.readlink(project / "build" / "current") == "origin-repo"
    assert (project / "build" / "current" / "app" / "main.yaml").read_text() == "one"

    # second run fetches in place and tracks the branch tip
    snapshot = resolver.resolve(SourceReference(str(origin), "master", None))
    assert (snapshot / "app" / "main.yaml").read_text() == "two"

    # re-pinning discards the newer checkout
    resolver.resolve(pinned)
    assert (project / "build" / "current" / "app" / "main.yaml").read_text() == "one"


def test_resolve_relative_local_path(tmp_path, origin):
    _commit_file(origin, "one")
    project = tmp_path / "project"
    project.mkdir()
    resolver = SourceResolver(project, project / "build")
    snapshot = resolver.resolve(SourceReference.parse("../origin-repo"))
    assert (snapshot / "app" / "main.yaml").read_text() == "one"


def test_resolve_local_project_points_alias_at_project(tmp_path):
    project = tmp_path / "project"
    (project / "app").mkdir(parents=True)
    resolver = SourceResolver(project, project / "build")
    assert resolver.resolve(SourceReference.parse(".")) == project
    assert Path(os.readlink(project / "build" / "current")) == project.resolve()


def test_failed_checkout_keeps_previous_alias(tmp_path, origin):
    first = _commit_file(origin, "one")
    project = tmp_path / "project"
    project.mkdir()
    resolver = SourceResolver(project, project / "build")
    resolver.resolve(SourceReference(str(origin), "master", first))

    with pytest.raises(GitError):
        resolver.resolve(SourceReference(str(origin), "master", "deadbeef"))
    assert os.readlink(project / "build" / "current") == "origin-repo"


def test_clone_of_missing_repository_fails(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    resolver = SourceResolver(project, project / "build")
    with pytest.raises(GitError):
        resolver.resolve(SourceReference(str(tmp_path / "missing.git")))
    assert not (project / "build" / "current").exists()


def test_auto_commit(origin):
    _commit_file(origin, "one")
    (origin / "new.txt").write_text("x")
    git = GitClient()
    assert git.auto_commit(origin) is True
    assert _git(origin, "log", "-1", "--format=%s").startswith(AUTO_COMMIT_PREFIX + ":")
    assert git.auto_commit(origin) is False


def test_auto_commit_requires_checkout(tmp_path):
    with pytest.raises(GitError):
        GitClient().auto_commit(tmp_path)


@pytest.fixture
def two_branch_origin(origin):
    _commit_file(origin, "master-one")
    _git(origin, "checkout", "-b", "dev")
    _commit_file(origin, "dev-one")
    _git(origin, "checkout", "master")
    return origin


@pytest.mark.parametrize("first, second", [("master", "dev"), ("dev", "master")])
def test_resolve_latest_switches_branch_in_same_snapshot(tmp_path, two_branch_origin, first, second):
    project = tmp_path / "project"
    project.mkdir()
    resolver = SourceResolver(project, project / "build")
    current = project / "build" / "current" / "app" / "main.yaml"

    resolver.resolve(SourceReference(str(two_branch_origin), first, None))
    assert current.read_text() == f"{first}-one"

    snapshot = resolver.resolve(SourceReference(str(two_branch_origin), second, None))
    assert current.read_text() == f"{second}-one"
    assert _git(snapshot, "rev-parse", "--abbrev-ref", "HEAD") == second
    assert _git(snapshot, "rev-parse", "--abbrev-ref", "@{upstream}") == f"origin/{second}"

    # the branch left behind is still followed to its newest commit
    _git(two_branch_origin, "checkout", first)
    _commit_file(two_branch_origin, f"{first}-two")
    _git(two_branch_origin, "checkout", "master")
    resolver.resolve(SourceReference(str(two_branch_origin), first, None))
    assert current.read_text() == f"{first}-two"


def test_init_from_remote_merges_local_files(tmp_path, origin):
    _commit_file(origin, "remote")
    project = tmp_path / "project"
    project.mkdir()
    (project / "local.txt").write_text("local")
    git = GitClient(env={**os.environ, "HOME": str(tmp_path)})

    git.init_from_remote(project, str(origin), "master")

    assert _git(project, "rev-parse", "--abbrev-ref", "HEAD") == "master"
    assert (project / "app" / "main.yaml").read_text() == "remote"
    assert (project / "local.txt").read_text() == "local"
    assert _git(project, "log", "-1", "--format=%s").startswith(AUTO_COMMIT_PREFIX + ":")
    assert _git(project, "status", "--porcelain") == ""


def test_init_creates_empty_repository(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    GitClient(env={**os.environ, "HOME": str(tmp_path)}).init(project)
    assert (project / ".git").is_dir()
