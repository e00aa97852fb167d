"""Per-module status report used by `gitmods status`."""
import logging
from dataclasses import dataclass
from typing import List

from gitmods.modules.context import Context
from gitmods.modules.graph import DependencyGraph
from gitmods.modules.snapshot import ModuleStatus
from gitmods.sync.engine import compute_state

logger = logging.getLogger(__name__)


@dataclass
class ModuleStatusRow:
    name: str
    target: str
    declared: str
    state: str
    dirty: bool = False

    def format(self) -> str:
        line = f"{self.name:<24} {self.target:<24} {self.declared:<24} {self.state}"
        return f"{line} (local changes)" if self.dirty else line


def collect_status(context: Context) -> List[ModuleStatusRow]:
    """One row per module: what is on disk against what is declared.

    `state` is the action an update with --switch would take (none, clone,
    switch), or `missing` for modules that are not cloned yet.
    """
    context.reload()
    graph = DependencyGraph(context)
    rows = []
    for node in graph.nodes.values():
        reference = node.reference
        declared = reference.target if reference else ""
        if node.status is ModuleStatus.MISSING:
            rows.append(ModuleStatusRow(node.name, "", declared, ModuleStatus.MISSING.value))
            continue
        snapshot = graph.snapshot(node)
        rows.append(
            ModuleStatusRow(
                name=node.name,
                target=snapshot.get_target().name,
                declared=declared,
                state=compute_state(snapshot, reference).value,
                dirty=not snapshot.is_clean(),
            )
        )
    return rows
