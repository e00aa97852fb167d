"""Copy a project and its installed modules into a standalone directory."""
import logging
import shutil
from pathlib import Path

from gitmods.core.errors import GitmodsError
from gitmods.modules.context import Context
from gitmods.modules.graph import DependencyGraph

logger = logging.getLogger(__name__)


def export_project(context: Context, destination: Path, ignore_dependencies: bool = False) -> Path:
    """Copy the project, then every installed module unless ignored.

    Linked modules are copied from the clone they point at, so the export
    holds no symlinks into the link cache.

    Raises:
        GitmodsError: If the destination exists and is not empty
    """
    destination = Path(destination).resolve()
    if destination.exists() and any(destination.iterdir()):
        raise GitmodsError(f"Export destination {destination} is not empty")

    context.reload()
    modules_root = context.modules_root.resolve()

    def skip_modules_root(directory, names):
        return [n for n in names if (Path(directory) / n).resolve() == modules_root]

    logger.info(f"Exporting {context.cwd} to {destination}")
    shutil.copytree(context.cwd, destination, ignore=skip_modules_root, dirs_exist_ok=True)
    if ignore_dependencies:
        return destination

    graph = DependencyGraph(context)
    for node in graph.installed():
        try:
            relative = node.directory.relative_to(context.cwd)
        except ValueError:
            relative = Path(modules_root.name) / node.name
        logger.info(f"Exporting {node.name}")
        shutil.copytree(node.directory, destination / relative, symlinks=False)
    return destination
