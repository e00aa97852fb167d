"""Synchronization engine: bring one working copy in line with its reference.

The decision between cloning, switching and leaving a module alone is
recomputed from the working copy on every call, so an interrupted run can
simply be started again.
"""
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from gitmods.core import git
from gitmods.core.errors import GitOperationError, InvalidRefError
from gitmods.core.reference import (
    RepositoryReference,
    Target,
    TargetKind,
    link_dir_name,
    looks_like_commit,
    urls_match,
)
from gitmods.modules.context import Context
from gitmods.modules.snapshot import RepositorySnapshot

logger = logging.getLogger(__name__)

UNRELATED_HISTORIES = "refusing to merge unrelated histories"


class SyncState(str, Enum):
    NONE = "none"
    CLONE = "clone"
    SWITCH = "switch"


class RepoChange(str, Enum):
    NONE = ""
    URL = "url"
    TARGET = "target"


def detect_change(snapshot: RepositorySnapshot, reference: RepositoryReference) -> RepoChange:
    """Compare an installed working copy with the reference it should match."""
    if not urls_match(snapshot.get_url(bare=True), reference.url):
        return RepoChange.URL
    current = snapshot.get_target()
    if current.name == reference.target:
        return RepoChange.NONE
    if (
        current.kind is not TargetKind.BRANCH
        and looks_like_commit(reference.target)
        and snapshot.get_last_commit().startswith(reference.target.lower())
    ):
        return RepoChange.NONE
    return RepoChange.TARGET


def compute_state(snapshot: RepositorySnapshot, reference: RepositoryReference) -> SyncState:
    """Which action check_and_switch() would take, without taking it."""
    if not snapshot.exists():
        return SyncState.CLONE
    change = detect_change(snapshot, reference)
    if change is RepoChange.URL:
        return SyncState.CLONE
    if change is RepoChange.TARGET:
        return SyncState.SWITCH
    return SyncState.NONE


def find_free_dir(directory: Path) -> Path:
    """First `<directory>_<n>` that does not exist yet."""
    index = 0
    while True:
        candidate = directory.with_name(f"{directory.name}_{index}")
        if not os.path.lexists(candidate):
            return candidate
        index += 1


class SyncEngine:
    """Clones, switches and updates module working copies.

    With linking enabled, clones live in a shared cache keyed by URL and
    target and module directories are symlinks into it. A shared clone is
    never re-targeted in place: switching a linked module re-points its link.
    """

    def __init__(self, context: Context, link: Optional[bool] = None, depth: Optional[int] = None):
        self.context = context
        self.link = context.config.link if link is None else link
        self.depth = depth if depth is not None else context.config.depth
        self._locked: Dict[Path, str] = {}

    def _lock(self, clone_dir: Path, name: str) -> None:
        self._locked.setdefault(Path(os.path.realpath(clone_dir)), name)

    def is_locked_by_other(self, clone_dir: Path, name: str) -> bool:
        """True when a different module in this run already uses `clone_dir`."""
        holder = self._locked.get(Path(os.path.realpath(clone_dir)))
        return holder is not None and holder != name

    def resolve_remote_target(self, reference: RepositoryReference) -> Target:
        target = git.classify_remote_ref(reference.url, reference.target)
        if target is not None:
            return target
        if looks_like_commit(reference.target):
            return Target.for_commit(reference.target)
        raise InvalidRefError(f"Reference '{reference.target}' not found in {reference.url}")

    def _relocate(self, directory: Path) -> Path:
        relocated = find_free_dir(directory)
        directory.rename(relocated)
        logger.warning(f"Moved {directory} to {relocated} to preserve its contents")
        return relocated

    def _clear_destination(self, directory: Path) -> None:
        """Make way for a clone without ever deleting user content."""
        if directory.is_symlink():
            directory.unlink()
        elif directory.is_dir():
            if any(directory.iterdir()):
                self._relocate(directory)
            else:
                directory.rmdir()

    def _link(self, directory: Path, clone_dir: Path) -> None:
        self._clear_destination(directory)
        directory.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(clone_dir, directory, target_is_directory=True)
        logger.info(f"Linked {directory.name} -> {clone_dir}")

    def clone(
        self,
        name: str,
        directory: Path,
        reference: RepositoryReference,
        link: Optional[bool] = None,
    ) -> bool:
        """Materialize `reference` at `directory`.

        Returns True for a fresh clone, False when an existing link-cache
        clone was reused.
        """
        directory = Path(directory)
        link = self.link if link is None else link
        clone_dir = self.context.linkdir / link_dir_name(reference) if link else directory

        fresh = False
        if not (clone_dir / ".git").exists():
            self._clear_destination(clone_dir)
            target = self.resolve_remote_target(reference)
            logger.info(f"{name}: cloning {reference}")
            git.clone(reference.url, clone_dir, target, depth=self.depth)
            fresh = True
        if link:
            self._link(directory, clone_dir)
        self._lock(clone_dir, name)
        self.context.pool.clear(name)
        return fresh

    def check_and_switch(
        self, snapshot: RepositorySnapshot, reference: RepositoryReference
    ) -> SyncState:
        """Make the working copy match `reference`.

        - missing: clone
        - different repository: move the directory aside, clone
        - different target: stash-safe switch
        - otherwise: nothing
        """
        name = snapshot.name
        directory = snapshot.directory

        if not snapshot.exists():
            return SyncState.CLONE if self.clone(name, directory, reference) else SyncState.SWITCH

        change = detect_change(snapshot, reference)
        if change is RepoChange.NONE:
            self._lock(directory, name)
            return SyncState.NONE

        if directory.is_symlink():
            logger.info(f"{name}: re-linking to {reference}")
            directory.unlink()
            fresh = self.clone(name, directory, reference, link=True)
            return SyncState.CLONE if fresh else SyncState.SWITCH

        if change is RepoChange.URL:
            logger.warning(
                f"{name}: {directory} is a clone of {snapshot.get_url()}, expected {reference.url}"
            )
            self._relocate(directory)
            self.clone(name, directory, reference)
            return SyncState.CLONE

        if self.is_locked_by_other(directory, name):
            logger.warning(f"{name}: {directory} is in use by another module, not switching")
            return SyncState.NONE

        self._switch(snapshot, reference)
        self._lock(directory, name)
        return SyncState.SWITCH

    def _switch(self, snapshot: RepositorySnapshot, reference: RepositoryReference) -> None:
        name = snapshot.name
        stash_name = snapshot.stash()
        try:
            try:
                snapshot.fetch(["--tags", "origin"])
            except GitOperationError as e:
                logger.warning(f"{name}: fetch failed: {e}")
            try:
                snapshot.pull()
            except GitOperationError as e:
                logger.warning(f"{name}: pull before switching failed: {e}")
            target = snapshot.resolve_target(reference.target)
            logger.info(f"{name}: switching to {target.kind.value} {target.name}")
            snapshot.checkout(target)
        finally:
            snapshot.stash_pop(stash_name)
            self.context.pool.clear(name)

    def stash_and_pull(self, snapshot: RepositorySnapshot) -> bool:
        """Pull upstream changes, keeping local edits. Returns True if anything changed.

        A remote whose history was rewritten is recovered with a hard reset
        when the working copy is clean; other pull failures propagate.
        """
        changed = not snapshot.is_up_to_date()
        stash_name = snapshot.stash()
        error = None
        try:
            snapshot.pull()
        except GitOperationError as e:
            error = e
        finally:
            snapshot.stash_pop(stash_name)
            self.context.pool.clear(snapshot.name)

        if error is None:
            return changed
        if UNRELATED_HISTORIES not in error.stderr:
            raise error
        return self._recover_unrelated_histories(snapshot)

    def _recover_unrelated_histories(self, snapshot: RepositorySnapshot) -> bool:
        name = snapshot.name
        directory = snapshot.directory
        if not snapshot.is_clean():
            logger.warning(f"{name}: unrelated histories detected, but cannot reset due to local changes!")
            return False

        logger.info(f"{name}: unrelated histories detected, performing hard reset...")
        try:
            git.fetch(directory, ["--all"])
        except GitOperationError as e:
            logger.error(f"{name}: fetch failed: {e}")
        branch = snapshot.get_target().name
        git.reset_hard(directory, f"origin/{branch}")
        try:
            snapshot.pull()
        except GitOperationError as e:
            logger.error(f"{name}: pull after reset failed: {e}")
        self.context.pool.clear(name)
        return True

    def check_remote_reset(
        self, snapshot: RepositorySnapshot, declared: RepositoryReference
    ) -> SyncState:
        """Move off a branch that was deleted upstream.

        Falls back to the declared branch when it still exists upstream,
        else to master.
        """
        current = snapshot.get_target()
        if current.kind is not TargetKind.BRANCH:
            return SyncState.NONE
        if snapshot.resolve_target(declared.target).kind is not TargetKind.BRANCH:
            return SyncState.NONE
        if git.does_remote_branch_exist(declared.url, current.name):
            return SyncState.NONE

        branch = "master"
        if declared.target != current.name and git.does_remote_branch_exist(
            declared.url, declared.target
        ):
            branch = declared.target
        logger.info(
            f'{snapshot.name}: switching branch to "{branch}" from "{current.name}" '
            f"as remote branch no longer exists"
        )
        return self.check_and_switch(snapshot, declared.with_target(branch))
