"""Thin wrappers around the git command line.

Every function runs one or a few blocking `git` invocations and raises
GitOperationError when git exits non-zero, unless noted otherwise.
"""
import logging
import subprocess
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Union

from gitmods.core.errors import GitOperationError, InvalidRefError
from gitmods.core.reference import Target, TargetKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
NETWORK_TIMEOUT = 300

PathLike = Union[str, Path]


def run_git(
    args: Sequence[str],
    cwd: Optional[PathLike] = None,
    check: bool = True,
    timeout: int = DEFAULT_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run `git <args>` and capture its output.

    Raises:
        GitOperationError: If git exits non-zero (when check is True) or
            does not finish within the timeout.
    """
    command = ["git", *args]
    try:
        result = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise GitOperationError(
            f"'git {' '.join(args)}' timed out after {timeout}s", args=args
        )

    if check and result.returncode != 0:
        raise GitOperationError(
            f"'git {' '.join(args)}' failed: {result.stderr.strip()}",
            args=args,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result


def _output(args: Sequence[str], cwd: PathLike, timeout: int = DEFAULT_TIMEOUT) -> str:
    return run_git(args, cwd=cwd, timeout=timeout).stdout.strip()


def get_current_target(directory: PathLike) -> Target:
    """Return the branch, tag or commit the working copy is sat on.

    A branch wins over a tag pointing at the same commit.
    """
    result = run_git(["symbolic-ref", "--short", "-q", "HEAD"], cwd=directory, check=False)
    name = result.stdout.strip()
    if result.returncode == 0 and name:
        return Target.for_branch(name)

    result = run_git(["describe", "--tags", "--exact-match"], cwd=directory, check=False)
    tag = result.stdout.strip()
    if result.returncode == 0 and tag:
        return Target.for_tag(tag)

    result = run_git(["rev-parse", "--verify", "HEAD"], cwd=directory, check=False)
    commit = result.stdout.strip()
    if result.returncode == 0 and commit:
        return Target.for_commit(commit)

    raise GitOperationError(f"Could not determine target for repo {directory}")


def get_working_copy_url(directory: PathLike, bare: bool = False) -> str:
    """Return the `origin` URL, with `#target` appended unless bare."""
    url = _output(["config", "--get", "remote.origin.url"], cwd=directory)
    if bare:
        return url
    return f"{url}#{get_current_target(directory).name}"


def classify_remote_ref(url: str, name: str) -> Optional[Target]:
    """Classify a name against the remote's refs without cloning.

    Returns a branch or tag Target, or None when the remote has no such ref.
    """
    result = run_git(
        ["ls-remote", "--heads", "--tags", url, name],
        check=False,
        timeout=NETWORK_TIMEOUT,
    )
    if result.returncode != 0:
        raise GitOperationError(
            f"Cannot list refs of {url}: {result.stderr.strip()}",
            args=["ls-remote", url, name],
            returncode=result.returncode,
            stderr=result.stderr,
        )
    refs = [line.split("\t", 1)[-1] for line in result.stdout.splitlines() if line.strip()]
    if f"refs/heads/{name}" in refs:
        return Target.for_branch(name)
    if f"refs/tags/{name}" in refs or f"refs/tags/{name}^{{}}" in refs:
        return Target.for_tag(name)
    return None


def clone(
    url: str,
    directory: PathLike,
    target: Optional[Target] = None,
    depth: Optional[int] = None,
) -> None:
    """Clone `url` into `directory` and leave it checked out at `target`."""
    directory = Path(directory)
    directory.parent.mkdir(parents=True, exist_ok=True)

    args = ["clone", "--quiet", url, str(directory)]
    if target is not None and target.kind is not TargetKind.COMMIT:
        args += ["--branch", target.name]
        if depth:
            args += [f"--depth={depth}", "--no-single-branch"]

    logger.info(f"Cloning {url} to {directory}")
    run_git(args, timeout=NETWORK_TIMEOUT)

    if target is not None and target.kind is TargetKind.COMMIT:
        checkout(directory, target)


def list_tags(directory: PathLike) -> List[str]:
    out = _output(["tag"], cwd=directory)
    return [line.strip() for line in out.splitlines() if line.strip()]


def tag_exists(directory: PathLike, tag: str) -> bool:
    return tag in list_tags(directory)


def _pathspec(exclude: Sequence[str]) -> List[str]:
    if not exclude:
        return []
    return ["--", ".", *(f":(exclude){path}" for path in exclude)]


def is_working_copy_clean(directory: PathLike, exclude: Sequence[str] = ()) -> bool:
    """True when there are no staged, unstaged or untracked changes outside `exclude`."""
    return _output(["status", "--porcelain", *_pathspec(exclude)], cwd=directory) == ""


def stash(directory: PathLike, exclude: Sequence[str] = ()) -> Optional[str]:
    """Stash local changes (untracked included) under a generated name.

    Paths in `exclude` are left in place. Returns the stash name, or None
    when there was nothing to stash.
    """
    if is_working_copy_clean(directory, exclude):
        return None
    stash_name = f"gitmods-{uuid.uuid4()}"
    run_git(
        ["stash", "push", "--include-untracked", "-m", stash_name, *_pathspec(exclude)],
        cwd=directory,
    )
    if stash_name not in _output(["stash", "list"], cwd=directory):
        return None
    return stash_name


def stash_pop(directory: PathLike, stash_name: Optional[str]) -> bool:
    """Re-apply a stash created by stash().

    Failures are logged and leave the entry in the stash list so the user can
    recover it manually. Returns True when the stash was applied.
    """
    if not stash_name:
        return True
    entries = _output(["stash", "list"], cwd=directory).splitlines()
    ref = next((line.split(":", 1)[0] for line in entries if stash_name in line), None)
    if ref is None:
        logger.warning(f"Stash {stash_name} not found in {directory}")
        return False
    result = run_git(["stash", "pop", ref], cwd=directory, check=False)
    if result.returncode != 0:
        logger.warning(
            f"Could not re-apply local changes in {directory}; "
            f"they are kept in the stash as '{stash_name}': {result.stderr.strip()}"
        )
        return False
    return True


def pull(directory: PathLike, depth: Optional[int] = None) -> None:
    """Merge upstream changes into the current branch. No-op off a branch."""
    if get_current_target(directory).kind is not TargetKind.BRANCH:
        return
    args = ["pull", "--no-rebase", "--quiet"]
    if depth:
        args.append(f"--depth={depth}")
    run_git(args, cwd=directory, timeout=NETWORK_TIMEOUT)


def checkout(directory: PathLike, target: Target, *files: str) -> None:
    ref = f"tags/{target.name}" if target.kind is TargetKind.TAG else target.name
    args = ["checkout", "--quiet", ref]
    if files:
        args += ["--", *files]
    run_git(args, cwd=directory)


def get_last_commit(directory: PathLike) -> str:
    return _output(["log", "-n", "1", "--pretty=format:%H"], cwd=directory)


def create_branch(directory: PathLike, branch: str) -> None:
    run_git(["branch", branch], cwd=directory)


def add_and_commit(directory: PathLike, files: Sequence[str], message: str) -> None:
    run_git(["add", *files], cwd=directory)
    run_git(["commit", "--quiet", "-m", message, *files], cwd=directory)


def create_tag(directory: PathLike, tag: str, message: str) -> None:
    run_git(["tag", "-a", tag, "-m", message], cwd=directory)


def push(directory: PathLike, args: Sequence[str] = ()) -> None:
    run_git(["push", "--quiet", *args], cwd=directory, timeout=NETWORK_TIMEOUT)


def fetch(directory: PathLike, args: Sequence[str] = ()) -> None:
    run_git(["fetch", "--quiet", *args], cwd=directory, timeout=NETWORK_TIMEOUT)


def reset_hard(directory: PathLike, ref: str) -> None:
    run_git(["reset", "--hard", "--quiet", ref], cwd=directory)


def is_up_to_date(directory: PathLike) -> bool:
    """True when HEAD equals its upstream after a fetch.

    Working copies without an upstream (detached, or no tracking branch)
    count as up to date.
    """
    try:
        fetch(directory)
        local = _output(["rev-parse", "HEAD"], cwd=directory)
        remote = _output(["rev-parse", "@{u}"], cwd=directory)
    except GitOperationError:
        return True
    return local == remote


def does_local_branch_exist(directory: PathLike, branch: str) -> bool:
    result = run_git(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=directory, check=False)
    return result.returncode == 0


def does_remote_branch_exist(url: str, branch: str) -> bool:
    result = run_git(
        ["ls-remote", "--exit-code", "--heads", url, branch],
        check=False,
        timeout=NETWORK_TIMEOUT,
    )
    return result.returncode == 0


def has_remote_tracking_branch(directory: PathLike, branch: str) -> bool:
    result = run_git(
        ["rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{branch}"],
        cwd=directory,
        check=False,
    )
    return result.returncode == 0


def is_commit(directory: PathLike, sha: str) -> bool:
    result = run_git(["cat-file", "-e", f"{sha}^{{commit}}"], cwd=directory, check=False)
    return result.returncode == 0


def delete_remote_branch(directory: PathLike, branch: str) -> None:
    fetch(directory)
    push(directory, ["origin", "--delete", branch])


def show_file_at_ref(directory: PathLike, ref: str, path: str) -> str:
    """Return the content of `path` at `ref` without checking it out."""
    result = run_git(["show", f"{ref}:{path}"], cwd=directory, check=False)
    if result.returncode != 0:
        raise InvalidRefError(f"Cannot read {path} at '{ref}': {result.stderr.strip()}")
    return result.stdout


def is_conflicted(directory: PathLike) -> bool:
    return _output(["ls-files", "--unmerged"], cwd=directory) != ""
