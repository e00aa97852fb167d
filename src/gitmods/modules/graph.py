"""Dependency graph: discover every module reachable from the root manifest."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from gitmods.core.errors import ManifestError
from gitmods.core.reference import RepositoryReference, reference_key
from gitmods.modules.context import Context
from gitmods.modules.snapshot import ModuleStatus, RepositorySnapshot

logger = logging.getLogger(__name__)


@dataclass
class Declaration:
    """One ancestor's declaration of a module."""

    parent: str
    reference: RepositoryReference


@dataclass(eq=False)
class ModuleNode:
    """A module in the graph: one per name, whatever the number of declarers."""

    name: str
    directory: Path
    declarations: List[Declaration] = field(default_factory=list)
    resolved: Optional[RepositoryReference] = None
    children: Dict[str, "ModuleNode"] = field(default_factory=dict)
    is_root: bool = False

    @property
    def refs(self) -> List[RepositoryReference]:
        return [d.reference for d in self.declarations]

    @property
    def reference(self) -> Optional[RepositoryReference]:
        """Resolved reference, else the first declared one."""
        if self.resolved is not None:
            return self.resolved
        return self.declarations[0].reference if self.declarations else None

    @property
    def status(self) -> ModuleStatus:
        if (self.directory / ".git").exists():
            return ModuleStatus.INSTALLED
        return ModuleStatus.MISSING

    def __repr__(self) -> str:
        return f"ModuleNode(name={self.name!r}, refs={[str(r) for r in self.refs]})"


class DependencyGraph:
    """Module graph rooted at the project in `context.cwd`.

    Nodes are keyed by name, so a module reached along several paths
    (a diamond) is a single node collecting every declaration.
    """

    def __init__(self, context: Context):
        self.context = context
        self.root: ModuleNode = None
        self.nodes: Dict[str, ModuleNode] = {}
        self.build()

    def build(self) -> "DependencyGraph":
        """(Re)walk the tree from the root manifest, reading manifests from disk."""
        resolved = {name: node.resolved for name, node in self.nodes.items() if node.resolved}
        self.root = ModuleNode(
            name=self.context.root_name(),
            directory=self.context.cwd,
            is_root=True,
        )
        self.nodes = {}
        self._walk(self.root, seen=set())
        for name, reference in resolved.items():
            node = self.nodes.get(name)
            if node is not None and any(reference_key(r) == reference_key(reference) for r in node.refs):
                node.resolved = reference
        logger.debug(f"Graph has {len(self.nodes)} modules")
        return self

    def _walk(self, node: ModuleNode, seen: Set[str]) -> None:
        seen.add(node.name)
        if node.status is ModuleStatus.MISSING:
            return
        try:
            manifest = self.context.load_manifest(node.directory)
        except ManifestError as e:
            if node.is_root:
                raise
            logger.warning(f"{node.name}: ignoring dependencies, {e}")
            return
        if manifest is None:
            return

        # register every declaration before recursing so a parent's own
        # declarations are recorded ahead of those of its descendants
        for dep_name, reference in manifest.references().items():
            if dep_name == self.root.name:
                logger.warning(f"{node.name}: ignoring dependency on the root project '{dep_name}'")
                continue
            child = self.nodes.get(dep_name)
            if child is None:
                child = ModuleNode(name=dep_name, directory=self.context.module_dir(dep_name))
                self.nodes[dep_name] = child
            child.declarations.append(Declaration(parent=node.name, reference=reference))
            node.children[dep_name] = child

        for child in node.children.values():
            if child.name not in seen:
                self._walk(child, seen)

    def snapshot(self, node: ModuleNode) -> RepositorySnapshot:
        if node.is_root:
            return self.context.pool.get(node.name, directory=node.directory)
        return self.context.pool.get(node.name, node.reference)

    def all_nodes(self) -> List[ModuleNode]:
        return [self.root, *self.nodes.values()]

    def children_of(self, node: ModuleNode) -> Dict[str, ModuleNode]:
        return node.children

    def missing(self) -> List[ModuleNode]:
        return [n for n in self.nodes.values() if n.status is ModuleStatus.MISSING]

    def installed(self) -> List[ModuleNode]:
        return [n for n in self.nodes.values() if n.status is ModuleStatus.INSTALLED]

    def find(self, name: str) -> Optional[ModuleNode]:
        """Case-insensitive lookup of a dependency by name."""
        lowered = name.lower()
        for node in self.nodes.values():
            if node.name.lower() == lowered:
                return node
        return None

    def conflicts(self) -> Dict[str, List[RepositoryReference]]:
        """Names declared with two or more distinct references."""
        result = {}
        for node in self.nodes.values():
            distinct = distinct_references(node.refs)
            if len(distinct) > 1:
                result[node.name] = distinct
        return result

    def reachable(self, excluding: Iterable[str] = ()) -> Set[str]:
        """Names reachable from the root without passing through `excluding`."""
        excluded = set(excluding)
        found: Set[str] = set()
        stack = [self.root]
        while stack:
            node = stack.pop()
            for child in node.children.values():
                if child.name in found or child.name in excluded:
                    continue
                found.add(child.name)
                stack.append(child)
        return found

    def install_missing(self, install: Callable[[ModuleNode], None]) -> int:
        """Install missing modules until a full pass finds none missing.

        Cloning a module reveals its manifest, hence possibly new missing
        children, so the graph is rebuilt after every pass. Returns the
        number of passes that installed something. Each name is attempted
        once, so a module the callback leaves missing cannot stall the loop.
        """
        passes = 0
        attempted: Set[str] = set()
        while True:
            missing = [n for n in self.missing() if n.name not in attempted]
            if not missing:
                return passes
            passes += 1
            for node in missing:
                attempted.add(node.name)
                install(node)
            self.build()


def distinct_references(refs: Iterable[RepositoryReference]) -> List[RepositoryReference]:
    """Drop references equal to an earlier one (case-insensitive), keeping order."""
    seen = set()
    result = []
    for reference in refs:
        key = reference_key(reference)
        if key not in seen:
            seen.add(key)
            result.append(reference)
    return result
