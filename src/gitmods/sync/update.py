"""The `update` operation: bring the whole module tree in line with its manifests."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from gitmods.core.errors import ConflictError, GitmodsError, GitOperationError
from gitmods.core.reference import TargetKind, reference_key
from gitmods.modules.conflicts import ConflictResolver, PromptFn
from gitmods.modules.context import Context
from gitmods.modules.graph import DependencyGraph, ModuleNode
from gitmods.modules.snapshot import ModuleStatus
from gitmods.release.overrides import parse_version_overrides
from gitmods.sync.engine import SyncEngine, SyncState, compute_state
from gitmods.sync.status_map import DependencyStatusMap

logger = logging.getLogger(__name__)


@dataclass
class UpdateOptions:
    switch: bool = False
    remote_reset: bool = True
    ignore_dependencies: bool = False
    force_latest: bool = False
    interactive: bool = False
    versions: Sequence[str] = ()
    input_file: Optional[Path] = None


@dataclass
class UpdateResult:
    status_map: DependencyStatusMap = field(default_factory=DependencyStatusMap)
    states: Dict[str, SyncState] = field(default_factory=dict)
    halted: List[str] = field(default_factory=list)
    conflicted: List[str] = field(default_factory=list)
    passes: int = 0

    @property
    def ok(self) -> bool:
        return not self.halted and not self.conflicted


def update(
    context: Context,
    options: Optional[UpdateOptions] = None,
    prompt: Optional[PromptFn] = None,
) -> UpdateResult:
    """Update the root project, then install, switch and pull every module.

    Raises:
        ConflictError: If the root or an installed module has unresolved
            merge conflicts
        VersionOverrideError: If a version override is malformed or names
            an unknown module
    """
    options = options or UpdateOptions()
    result = UpdateResult()

    context.reload()
    graph = DependencyGraph(context)
    _abort_on_merge_conflicts(graph)

    _update_root(context, result.status_map)
    if options.ignore_dependencies:
        logger.info("Skipping dependencies")
        _log_summary(result)
        return result

    # the pull may have changed .gitmodsrc and the root manifest
    context.reload()
    graph.build()

    overrides = parse_version_overrides(graph, options.versions, options.input_file)
    resolver = ConflictResolver(
        overrides=overrides,
        use_latest=options.force_latest,
        interactive=options.interactive,
        prompt=prompt,
    )
    ModuleUpdater(context, graph, resolver, SyncEngine(context), options, result).run()
    _log_summary(result)
    return result


def _abort_on_merge_conflicts(graph: DependencyGraph) -> None:
    conflicted = [
        node.name
        for node in graph.all_nodes()
        if node.status is ModuleStatus.INSTALLED and graph.snapshot(node).is_conflicted()
    ]
    if conflicted:
        raise ConflictError(conflicted)


def _update_root(context: Context, status_map: DependencyStatusMap) -> None:
    snapshot = context.root_snapshot()
    name = snapshot.name
    if not snapshot.exists():
        logger.debug(f"{name}: not a git repository, not pulling")
        return
    try:
        snapshot.get_url()
    except GitOperationError:
        logger.debug(f"{name}: no origin remote, not pulling")
        return
    if snapshot.get_target().kind is not TargetKind.BRANCH:
        logger.info(f"{name}: not on a branch, not pulling")
        return

    status_map.mark_inspected(name)
    changed = not snapshot.is_up_to_date()
    stash_name = snapshot.stash()
    try:
        snapshot.pull()
    except GitOperationError as e:
        logger.error(f"{name}: pull failed, does the branch exist on the remote? {e}")
    finally:
        snapshot.stash_pop(stash_name)
        context.pool.clear(name)
    if changed:
        status_map.mark_changed(name)
    status_map.mark_up_to_date(name)


def _log_summary(result: UpdateResult) -> None:
    status_map = result.status_map
    logger.info(
        f"{status_map.inspected_count()} repositories inspected, "
        f"{status_map.changed_count()} changed"
    )
    if result.halted:
        logger.error(f"{len(result.halted)} failed: {', '.join(result.halted)}")
    if result.conflicted:
        logger.error(f"{len(result.conflicted)} with merge conflicts: {', '.join(result.conflicted)}")


class ModuleUpdater:
    """Drives one update run over the dependency graph.

    Modules are taken in graph discovery order. Each (name, reference) pair
    is processed at most once; when processing changes a working copy the
    graph is rebuilt so the declarations it now makes are honored.
    """

    def __init__(
        self,
        context: Context,
        graph: DependencyGraph,
        resolver: ConflictResolver,
        engine: SyncEngine,
        options: UpdateOptions,
        result: UpdateResult,
    ):
        self.context = context
        self.graph = graph
        self.resolver = resolver
        self.engine = engine
        self.options = options
        self.result = result
        self.status_map = result.status_map
        self.processed: Set[Tuple[str, str]] = set()

    def run(self) -> UpdateResult:
        self.result.passes += self.graph.install_missing(self.install)
        while True:
            node = self._next_node()
            if node is None:
                return self.result
            self._process(node)

    def install(self, node: ModuleNode) -> None:
        """Clone a missing module at its resolved reference."""
        if node.name in self.result.halted:
            return
        reference = self.resolver.resolve(node)
        if reference is None:
            return
        try:
            state = self.engine.check_and_switch(self.graph.snapshot(node), reference)
        except GitmodsError as e:
            self._halt(node, e)
            return
        self.result.states[node.name] = state
        self.status_map.mark_inspected(node.name)
        self.status_map.mark_changed(node.name)
        self.status_map.mark_up_to_date(node.name)
        self.processed.add((node.name, reference_key(reference)))

    def _next_node(self) -> Optional[ModuleNode]:
        reachable = self.graph.reachable(excluding=self.result.halted)
        for node in list(self.graph.nodes.values()):
            if node.name not in reachable or node.status is ModuleStatus.MISSING:
                continue
            reference = self.resolver.resolve(node)
            if reference is None:
                continue
            if (node.name, reference_key(reference)) not in self.processed:
                return node
        return None

    def _process(self, node: ModuleNode) -> None:
        name = node.name
        reference = node.resolved
        self.processed.add((name, reference_key(reference)))
        self.status_map.mark_inspected(name)

        if self.status_map.is_up_to_date(name):
            if compute_state(self.graph.snapshot(node), reference) is SyncState.NONE:
                return

        try:
            state = SyncState.NONE
            if self.options.remote_reset:
                state = self.engine.check_remote_reset(self.graph.snapshot(node), reference)
            if state is SyncState.NONE and (
                self.options.switch or self.resolver.has_conflict(node)
            ):
                state = self.engine.check_and_switch(self.graph.snapshot(node), reference)
            pulled = self.engine.stash_and_pull(self.graph.snapshot(node))
        except GitmodsError as e:
            self._halt(node, e)
            return

        if state is not SyncState.NONE or name not in self.result.states:
            self.result.states[name] = state
        if state is not SyncState.NONE or pulled:
            self.status_map.mark_changed(name)
            self.graph.build()
            self.result.passes += self.graph.install_missing(self.install)
        self.status_map.mark_up_to_date(name)

    def _halt(self, node: ModuleNode, error: Exception) -> None:
        logger.error(f"{node.name}: {error}")
        self.status_map.mark_failed(node.name)
        if node.name not in self.result.halted:
            self.result.halted.append(node.name)
        snapshot = self.graph.snapshot(node)
        if snapshot.exists() and snapshot.is_conflicted():
            self.result.conflicted.append(node.name)
