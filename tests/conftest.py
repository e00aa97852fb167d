"""Pytest fixtures for gitmods tests."""
import json
import subprocess
import uuid
from pathlib import Path
from typing import Dict, Optional

import pytest


def git(cwd: Path, *args: str) -> str:
    """Run git in `cwd` and return its stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    """Commit identity for every git call made by the tests and the code under test."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


class RepoFactory:
    """Creates bare remotes plus working clones to push content into them.

    Every repository has a `master` branch holding an empty `.gitignore`.
    Content is added with add_project(), on master, on a branch, or on a
    throwaway branch behind a tag (so master does not see it).
    """

    def __init__(self, root: Path):
        self.root = root
        self.remotes_dir = root / "remotes"
        self.work_dir = root / "work"
        self.checkouts_dir = root / "checkouts"
        self.repos: Dict[str, Path] = {}

    def url(self, name: str) -> str:
        return str(self.remotes_dir / f"{name}.git")

    def repo(self, name: str) -> Path:
        """Working clone of `name`, creating the remote on first use."""
        if name in self.repos:
            return self.repos[name]

        bare = self.remotes_dir / f"{name}.git"
        bare.mkdir(parents=True)
        git(bare, "init", "--bare", "--quiet")
        git(bare, "symbolic-ref", "HEAD", "refs/heads/master")

        work = self.work_dir / name
        work.mkdir(parents=True)
        git(work, "init", "--quiet")
        git(work, "symbolic-ref", "HEAD", "refs/heads/master")
        (work / ".gitignore").write_text("")
        git(work, "add", ".gitignore")
        git(work, "commit", "--quiet", "-m", "Creating repo: Initial commit")
        git(work, "remote", "add", "origin", str(bare))
        git(work, "push", "--quiet", "-u", "origin", "master")

        self.repos[name] = work
        return work

    def add_project(
        self,
        name: str,
        dependencies: Optional[Dict[str, str]] = None,
        version: str = "0.1.0-snapshot.0",
        files: Optional[Dict[str, str]] = None,
        branch: Optional[str] = None,
        tag: Optional[str] = None,
        manifest: bool = True,
    ) -> str:
        """Commit a manifest and files to `name` and push them.

        Returns the reference string a parent would declare: the tag when
        given, else the branch, else master.
        """
        work = self.repo(name)
        temp_branch = None
        if branch:
            self._checkout_branch(work, branch)
        elif tag:
            temp_branch = f"tmp-{uuid.uuid4().hex[:8]}"
            git(work, "checkout", "--quiet", "-b", temp_branch)

        files = dict(files or {"file.txt": f"{name}\n"})
        if manifest:
            files["gitmods.json"] = json.dumps(
                {"name": name, "version": version, "dependencies": dependencies or {}},
                indent=2,
            )
        for path, contents in files.items():
            (work / path).parent.mkdir(parents=True, exist_ok=True)
            (work / path).write_text(contents)
        git(work, "add", "-A")
        git(work, "commit", "--quiet", "-m", f"Creating repo: adding files to {name}")

        if tag:
            git(work, "tag", "-a", tag, "-m", f"Creating repo: Creating tag {tag}")
            git(work, "push", "--quiet", "origin", f"refs/tags/{tag}")
        if not temp_branch:
            git(work, "push", "--quiet", "-u", "origin", branch or "master")

        git(work, "checkout", "--quiet", "master")
        if temp_branch:
            git(work, "branch", "--quiet", "-D", temp_branch)
        return f"{self.url(name)}#{tag or branch or 'master'}"

    def push_file(self, name: str, path: str, contents: str, branch: str = "master") -> str:
        """Commit one file on `branch` of `name` and push it. Returns the new commit."""
        work = self.repo(name)
        self._checkout_branch(work, branch)
        git(work, "pull", "--quiet", "--no-rebase", "origin", branch)
        (work / path).parent.mkdir(parents=True, exist_ok=True)
        (work / path).write_text(contents)
        git(work, "add", path)
        git(work, "commit", "--quiet", "-m", f"Updating {path}")
        git(work, "push", "--quiet", "origin", branch)
        sha = git(work, "rev-parse", "HEAD")
        git(work, "checkout", "--quiet", "master")
        return sha

    def checkout(self, name: str) -> Path:
        """Fresh clone of `name` to run gitmods in."""
        directory = self.checkouts_dir / f"{name}-{uuid.uuid4().hex[:8]}"
        directory.parent.mkdir(parents=True, exist_ok=True)
        git(self.checkouts_dir, "clone", "--quiet", self.url(name), str(directory))
        return directory

    @staticmethod
    def _checkout_branch(work: Path, branch: str) -> None:
        existing = git(work, "branch", "--list", branch)
        if existing:
            git(work, "checkout", "--quiet", branch)
        else:
            git(work, "checkout", "--quiet", "-b", branch)


@pytest.fixture
def repos(tmp_path: Path) -> RepoFactory:
    return RepoFactory(tmp_path)


@pytest.fixture
def one_dependency(repos: RepoFactory) -> Dict[str, Path]:
    """Project `main` depending on `dep1` at master.

    Returns dict with:
        - project: checkout of main to run gitmods in
        - dep1: expected module directory of dep1
    """
    dep1 = repos.add_project("dep1")
    repos.add_project("main", {"dep1": dep1})
    project = repos.checkout("main")
    return {"project": project, "dep1": project / "gitmods_modules" / "dep1"}


def read_manifest(directory: Path) -> dict:
    return json.loads((Path(directory) / "gitmods.json").read_text())


def current_target(directory: Path) -> str:
    """Branch name, else exact tag, else commit of a working copy."""
    branch = subprocess.run(
        ["git", "symbolic-ref", "--short", "-q", "HEAD"],
        cwd=directory,
        capture_output=True,
        text=True,
    ).stdout.strip()
    if branch:
        return branch
    tag = subprocess.run(
        ["git", "describe", "--tags", "--exact-match"],
        cwd=directory,
        capture_output=True,
        text=True,
    ).stdout.strip()
    return tag or git(directory, "rev-parse", "HEAD")
