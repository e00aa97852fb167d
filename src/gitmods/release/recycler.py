"""Find existing release tags that can be reused instead of cutting new ones."""
import logging
from typing import Dict, FrozenSet, Optional

from gitmods.core import versions
from gitmods.core.reference import TargetKind
from gitmods.modules.graph import DependencyGraph, ModuleNode
from gitmods.modules.snapshot import ModuleStatus, RepositorySnapshot

logger = logging.getLogger(__name__)


def find_tag_at_head(snapshot: RepositorySnapshot) -> Optional[str]:
    """Tag that was cut from exactly the current state of the working copy.

    A working copy already checked out at a tag recycles that tag. Otherwise
    tags are tried highest version first and the first whose manifest
    provenance records the current target and last commit wins.
    """
    target = snapshot.get_target()
    if target.kind is TargetKind.TAG:
        return target.name

    last_commit = snapshot.get_last_commit()
    for tag in versions.sort_tags(snapshot.list_tags()):
        manifest = snapshot.get_manifest_at_ref(tag)
        if manifest is not None and manifest.tag is not None:
            if manifest.tag.matches(target, last_commit):
                return tag
    return None


class TagRecycler:
    """Decides, per module, whether an existing tag can be reused.

    A tag is reusable only when the whole subtree below the module is
    reusable too and the tag's own manifest pins exactly the current
    children at their reusable tags.
    """

    def __init__(self, graph: DependencyGraph):
        self.graph = graph
        self.candidates: Dict[str, Optional[str]] = {}

    def candidate(self, node: ModuleNode) -> Optional[str]:
        if node.name not in self.candidates:
            tag = None
            if node.status is ModuleStatus.INSTALLED:
                tag = find_tag_at_head(self.graph.snapshot(node))
            self.candidates[node.name] = tag
        return self.candidates[node.name]

    def recycled_tag(self, node: ModuleNode) -> Optional[str]:
        tag = self._determine(node, frozenset())
        if tag and self._validate(node, tag, frozenset()):
            return tag
        return None

    def _determine(self, node: ModuleNode, visiting: FrozenSet[str]) -> Optional[str]:
        tag = self.candidate(node)
        if not tag or node.name in visiting:
            return tag
        visiting = visiting | {node.name}
        for child in self.graph.children_of(node).values():
            if not self._determine(child, visiting):
                return None
        return tag

    def _validate(self, node: ModuleNode, tag: Optional[str], visiting: FrozenSet[str]) -> bool:
        if not tag:
            return False
        if node.name in visiting:
            return True
        visiting = visiting | {node.name}

        manifest = self.graph.snapshot(node).get_manifest_at_ref(tag)
        pinned = manifest.references() if manifest is not None else {}
        for name, reference in pinned.items():
            if self.candidates.get(name) != reference.target:
                logger.debug(f"{node.name}@{tag}: {name} is pinned at {reference.target}")
                return False
        children = self.graph.children_of(node)
        if set(pinned) != set(children):
            logger.debug(f"{node.name}@{tag}: dependencies changed since the tag was cut")
            return False
        for name, child in children.items():
            if not self._validate(child, self.candidates.get(name), visiting):
                return False
        return True
