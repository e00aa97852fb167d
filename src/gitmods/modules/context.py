"""Per-invocation context: configuration, root paths and the snapshot cache."""
import logging
from pathlib import Path
from typing import Optional

from gitmods.core.config import RcConfig, load_rc
from gitmods.core.errors import ManifestError
from gitmods.modules.manifest import Manifest
from gitmods.modules.snapshot import RepositorySnapshot, SnapshotPool

logger = logging.getLogger(__name__)


class Context:
    """Carries the project directory, its `.gitmodsrc` and the snapshot pool.

    Passed explicitly to every operation instead of module-level globals.
    reload() re-reads the configuration and invalidates cached snapshots.
    """

    def __init__(self, cwd: Path, **overrides):
        self.cwd = Path(cwd).resolve()
        self._overrides = {k: v for k, v in overrides.items() if v is not None}
        self.pool = SnapshotPool(self)
        self.config = RcConfig()
        self.reload()

    def reload(self) -> None:
        """Re-read `.gitmodsrc` and drop every cached snapshot."""
        config = load_rc(self.cwd)
        if self._overrides:
            config = config.model_copy(update=self._overrides)
        self.config = config
        self.invalidate()

    def invalidate(self) -> None:
        self.pool.clear_all()

    @property
    def modules_root(self) -> Path:
        return self.cwd / self.config.directory

    @property
    def manifest_filename(self) -> str:
        return self.config.filename

    @property
    def linkdir(self) -> Path:
        if self.config.linkdir:
            return (self.cwd / self.config.linkdir).resolve()
        return self.modules_root / ".links"

    def module_dir(self, name: str) -> Path:
        return self.modules_root / name

    def manifest_path(self, directory: Path) -> Path:
        return Path(directory) / self.manifest_filename

    def load_manifest(self, directory: Path) -> Optional[Manifest]:
        """Load the manifest in `directory`, or None if there is none.

        Raises:
            ManifestError: If the file exists but cannot be parsed
        """
        path = self.manifest_path(directory)
        if not path.exists():
            return None
        return Manifest.load(path)

    def save_manifest(self, directory: Path, manifest: Manifest) -> None:
        manifest.save(self.manifest_path(directory))

    def root_name(self) -> str:
        try:
            manifest = self.load_manifest(self.cwd)
        except ManifestError:
            manifest = None
        if manifest is not None and manifest.name:
            return manifest.name
        return self.cwd.name

    def root_snapshot(self) -> RepositorySnapshot:
        return self.pool.get(self.root_name(), directory=self.cwd)

    def snapshot(self, name: str, ref=None) -> RepositorySnapshot:
        return self.pool.get(name, ref)
