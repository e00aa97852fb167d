"""Module tree: manifests, snapshots, the dependency graph and conflict resolution."""
from gitmods.modules.conflicts import ConflictResolver
from gitmods.modules.context import Context
from gitmods.modules.graph import DependencyGraph, ModuleNode
from gitmods.modules.manifest import Manifest
from gitmods.modules.snapshot import RepositorySnapshot, SnapshotPool

__all__ = [
    "ConflictResolver",
    "Context",
    "DependencyGraph",
    "Manifest",
    "ModuleNode",
    "RepositorySnapshot",
    "SnapshotPool",
]
