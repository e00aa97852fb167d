"""Cached views of module working copies and the pool that shares them."""
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from gitmods.core import git
from gitmods.core.errors import GitmodsError
from gitmods.core.reference import RepositoryReference, Target, looks_like_commit
from gitmods.modules.manifest import Manifest

if TYPE_CHECKING:
    from gitmods.modules.context import Context

logger = logging.getLogger(__name__)

_UNSET = object()


class ModuleStatus(str, Enum):
    MISSING = "missing"
    INSTALLED = "installed"


class RepositorySnapshot:
    """Lazily loaded view of one module's on-disk and remote state.

    Every getter caches its answer; the mutating helpers drop the cache so
    the next read goes back to git.
    """

    def __init__(
        self,
        context: "Context",
        name: str,
        directory: Path,
        ref: Optional[RepositoryReference] = None,
    ):
        self.context = context
        self.name = name
        self.directory = Path(directory)
        self.ref = ref
        self._reset_cache()

    def _reset_cache(self) -> None:
        self._url = None
        self._target = None
        self._last_commit = None
        self._tags = None
        self._manifest = _UNSET
        self._manifests_at_ref: Dict[str, Optional[Manifest]] = {}

    def refresh(self) -> None:
        self._reset_cache()

    def exists(self) -> bool:
        return (self.directory / ".git").exists()

    def get_status(self) -> ModuleStatus:
        return ModuleStatus.INSTALLED if self.exists() else ModuleStatus.MISSING

    def get_url(self, bare: bool = True) -> str:
        if self._url is None:
            self._url = git.get_working_copy_url(self.directory, bare=True)
        if bare:
            return self._url
        return f"{self._url}#{self.get_target().name}"

    def get_target(self) -> Target:
        if self._target is None:
            self._target = git.get_current_target(self.directory)
        return self._target

    def get_last_commit(self) -> str:
        if self._last_commit is None:
            self._last_commit = git.get_last_commit(self.directory)
        return self._last_commit

    def list_tags(self) -> List[str]:
        if self._tags is None:
            self._tags = git.list_tags(self.directory)
        return self._tags

    def get_manifest(self) -> Optional[Manifest]:
        """Manifest from the working copy, or None when the module has none."""
        if self._manifest is _UNSET:
            self._manifest = self.context.load_manifest(self.directory)
        return self._manifest

    def get_manifest_at_ref(self, ref: str) -> Optional[Manifest]:
        """Manifest as committed at `ref`, read without checking it out.

        Returns None when the file is absent at that ref or cannot be parsed.
        """
        if ref not in self._manifests_at_ref:
            manifest = None
            try:
                text = git.show_file_at_ref(self.directory, ref, self.context.manifest_filename)
                manifest = Manifest.from_json(text, source=f"{self.name}@{ref}")
            except GitmodsError as e:
                logger.debug(f"No usable manifest for {self.name} at {ref}: {e}")
            self._manifests_at_ref[ref] = manifest
        return self._manifests_at_ref[ref]

    def resolve_target(self, name: str) -> Target:
        """Classify a target string against this working copy."""
        if name in self.list_tags():
            return Target.for_tag(name)
        if git.does_local_branch_exist(self.directory, name) or git.has_remote_tracking_branch(
            self.directory, name
        ):
            return Target.for_branch(name)
        if looks_like_commit(name) and git.is_commit(self.directory, name):
            return Target.for_commit(name)
        return Target.for_branch(name)

    def is_conflicted(self) -> bool:
        return git.is_conflicted(self.directory)

    def _managed_paths(self) -> List[str]:
        """Modules root and link cache when they live inside this working copy."""
        paths = []
        for path in (self.context.modules_root, self.context.linkdir):
            try:
                paths.append(path.resolve().relative_to(self.directory.resolve()).as_posix())
            except ValueError:
                continue
        return paths

    def is_clean(self) -> bool:
        return git.is_working_copy_clean(self.directory, self._managed_paths())

    def is_up_to_date(self) -> bool:
        return git.is_up_to_date(self.directory)

    def stash(self) -> Optional[str]:
        self.refresh()
        return git.stash(self.directory, self._managed_paths())

    def stash_pop(self, stash_name: Optional[str]) -> bool:
        self.refresh()
        return git.stash_pop(self.directory, stash_name)

    def pull(self) -> None:
        self.refresh()
        git.pull(self.directory, depth=self.context.config.depth)

    def fetch(self, args=()) -> None:
        self.refresh()
        git.fetch(self.directory, args)

    def checkout(self, target: Target) -> None:
        self.refresh()
        git.checkout(self.directory, target)

    def __repr__(self) -> str:
        return f"RepositorySnapshot(name={self.name!r}, directory={str(self.directory)!r})"


class SnapshotPool:
    """Process-scoped snapshot cache keyed by (name, ref).

    The owning context clears it whenever configuration is (re)loaded, as the
    modules root may then point somewhere else.
    """

    def __init__(self, context: "Context"):
        self.context = context
        self._cache: Dict[Tuple[str, Optional[str]], RepositorySnapshot] = {}

    def get(
        self,
        name: str,
        ref: Optional[RepositoryReference] = None,
        directory: Optional[Path] = None,
    ) -> RepositorySnapshot:
        key = (name, str(ref) if ref is not None else None)
        if key not in self._cache:
            if directory is None:
                directory = self.context.module_dir(name)
            self._cache[key] = RepositorySnapshot(self.context, name, directory, ref)
        return self._cache[key]

    def clear(self, name: str) -> None:
        for key in [k for k in self._cache if k[0] == name]:
            del self._cache[key]

    def clear_all(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
