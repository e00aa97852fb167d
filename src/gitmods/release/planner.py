"""Release tagging: plan tags for the whole tree, then cut and push them."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import click

from gitmods.core import git, versions
from gitmods.core.errors import GitmodsError, ManifestError
from gitmods.core.reference import Target, TargetKind, format_reference, parse_reference
from gitmods.modules.context import Context
from gitmods.modules.graph import DependencyGraph, ModuleNode
from gitmods.modules.manifest import Manifest, TagProvenance, write_version_to_json_file
from gitmods.modules.snapshot import ModuleStatus, RepositorySnapshot
from gitmods.release.recycler import TagRecycler

logger = logging.getLogger(__name__)

METADATA_FILES = ("package.json", "bower.json")

ChooseFn = Callable[[str, str, List[str], str], str]
ConfirmFn = Callable[[str], bool]


@dataclass
class TagPlanEntry:
    """What the planner intends to do with one module."""

    name: str
    tag: str
    dir: Path
    original_target: Target
    create: bool
    recycled: bool = False
    branch: Optional[str] = None
    increment_master_version: bool = False

    @property
    def original_branch(self) -> Optional[str]:
        return self.original_target.branch


@dataclass
class TagOptions:
    increment: str = "minor"
    interactive: bool = False


def choose_alternative(name: str, tag: str, alternatives: List[str], default: str) -> str:
    return click.prompt(
        f"{name}: Tag {tag} already exists. Use available alternative?",
        type=click.Choice(alternatives),
        default=default,
    )


def confirm_commit(message: str) -> bool:
    return click.confirm(message, default=False)


class ReleasePlanner:
    """Plans and cuts release tags for a module tree.

    plan() is read-only. execute() runs in three phases over the planned
    modules: bump the working version on each original branch, cut release
    branches and tags, then push them.
    """

    def __init__(
        self,
        context: Context,
        graph: DependencyGraph,
        increment: str = "minor",
        interactive: bool = False,
        choose: Optional[ChooseFn] = None,
        confirm: Optional[ConfirmFn] = None,
    ):
        if increment not in versions.INCREMENTS:
            raise ValueError(f"Unknown increment: {increment}")
        self.context = context
        self.graph = graph
        self.increment = increment
        self.interactive = interactive
        self.choose = choose or choose_alternative
        self.confirm_fn = confirm or confirm_commit
        self.recycler = TagRecycler(graph)

    def plan(self) -> Dict[str, TagPlanEntry]:
        """Ordered name -> entry, root first then depth first."""
        plan: Dict[str, TagPlanEntry] = {}
        self._plan_recursive(self.graph.root, plan, set())
        return plan

    def _plan_recursive(self, node: ModuleNode, plan: Dict[str, TagPlanEntry], visited: Set[str]) -> None:
        if node.name in visited:
            return
        visited.add(node.name)
        if node.status is ModuleStatus.MISSING:
            logger.warning(f"{node.name} is not installed, so will not be tagged")
        else:
            entry = self._plan_entry(node)
            if entry is not None:
                plan[node.name] = entry
        for child in self.graph.children_of(node).values():
            self._plan_recursive(child, plan, visited)

    def _plan_entry(self, node: ModuleNode) -> Optional[TagPlanEntry]:
        snapshot = self.graph.snapshot(node)
        target = snapshot.get_target()
        recycled = self.recycler.recycled_tag(node)
        if recycled:
            return TagPlanEntry(
                name=node.name,
                tag=recycled,
                dir=snapshot.directory,
                original_target=target,
                create=False,
                recycled=True,
            )

        tag = self._tag_name(snapshot)
        if tag is None:
            return None
        return TagPlanEntry(
            name=node.name,
            tag=tag,
            dir=snapshot.directory,
            original_target=target,
            create=True,
            branch=f"release/{tag}",
            # only bump the working version when the branch matches its upstream
            increment_master_version=target.kind is TargetKind.BRANCH and snapshot.is_up_to_date(),
        )

    def _tag_name(self, snapshot: RepositorySnapshot) -> Optional[str]:
        name = snapshot.name
        try:
            manifest = snapshot.get_manifest()
        except ManifestError as e:
            logger.warning(f"{name} has an unreadable {self.context.manifest_filename}, so will not be tagged: {e}")
            return None
        if manifest is None or not versions.is_valid(manifest.version):
            logger.warning(f"{name} has no valid {self.context.manifest_filename}, so will not be tagged")
            return None

        tag = versions.increment(manifest.version, self.increment)
        tags = snapshot.list_tags()
        if tag not in tags:
            return tag

        alternatives = [versions.next_available(tags, tag, kind) for kind in versions.INCREMENTS]
        default = alternatives[versions.INCREMENTS.index(self.increment)]
        if self.interactive:
            return self.choose(name, tag, alternatives, default)
        logger.info(f"{name}: tag {tag} already exists, using {default}")
        return default

    def confirm(self, plan: Dict[str, TagPlanEntry]) -> bool:
        for name, entry in plan.items():
            if not entry.create:
                logger.info(f"[REUSE] {name}: {entry.tag}")
        for name, entry in plan.items():
            if entry.create:
                logger.info(f"[NEW] {name}: {entry.tag}")
        for name, entry in plan.items():
            if entry.create and not entry.increment_master_version:
                logger.warning(
                    f"{name} is not up to date with its upstream branch "
                    f"({entry.original_target}), and so will not have the "
                    f"{self.context.manifest_filename} version automatically incremented"
                )
        if not self.interactive:
            return True
        return self.confirm_fn("Commit changes?")

    def execute(self, plan: Dict[str, TagPlanEntry]) -> None:
        self._increment_original_versions(plan)
        self._prepare_tags(plan)
        self._push_tags(plan)
        for name in plan:
            self.context.pool.clear(name)

    def _write_version(self, directory: Path, manifest: Manifest, version: str) -> List[str]:
        """Save `version` into the manifest and any adjacent metadata files."""
        manifest.version = version
        self.context.save_manifest(directory, manifest)
        files = [self.context.manifest_filename]
        for filename in METADATA_FILES:
            if write_version_to_json_file(directory / filename, version):
                files.append(filename)
        return files

    def _increment_original_versions(self, plan: Dict[str, TagPlanEntry]) -> None:
        for entry in plan.values():
            if not entry.create or not entry.increment_master_version:
                continue
            manifest = self.context.load_manifest(entry.dir)
            version = versions.increment_prerelease(manifest.version, self.increment)
            logger.info(f"{entry.name}: {entry.original_target} is now at {version}")
            files = self._write_version(entry.dir, manifest, version)
            git.add_and_commit(entry.dir, files, f"Incrementing version to {version} after tag {entry.tag}")
            git.push(entry.dir, ["origin", "HEAD"])

    def _prepare_tags(self, plan: Dict[str, TagPlanEntry]) -> None:
        for entry in plan.values():
            if not entry.create:
                continue
            directory = entry.dir
            if git.tag_exists(directory, entry.tag):
                raise GitmodsError(f"{entry.name}: tag {entry.tag} was created since planning")
            last_commit = git.get_last_commit(directory)
            git.create_branch(directory, entry.branch)
            git.checkout(directory, Target.for_branch(entry.branch))

            manifest = self.context.load_manifest(directory)
            for name, value in manifest.dependencies.items():
                if name in plan:
                    manifest.dependencies[name] = format_reference(parse_reference(value).url, plan[name].tag)
            manifest.tag = TagProvenance(
                commit=last_commit,
                branch=entry.original_branch,
                target=entry.original_target.to_dict(),
            )
            files = self._write_version(directory, manifest, entry.tag)
            git.add_and_commit(
                directory, files, f"Committing new {self.context.manifest_filename} for tag {entry.tag}"
            )
            git.create_tag(directory, entry.tag, f"Tag for v{entry.tag}")
            logger.info(f"{entry.name}: created tag {entry.tag}")
            git.checkout(directory, entry.original_target)

    def _push_tags(self, plan: Dict[str, TagPlanEntry]) -> None:
        for entry in plan.values():
            if not entry.create:
                continue
            git.push(entry.dir, ["origin", entry.branch])
            git.push(entry.dir, ["origin", f"refs/tags/{entry.tag}"])


def tag_operation(
    context: Context,
    options: Optional[TagOptions] = None,
    choose: Optional[ChooseFn] = None,
    confirm: Optional[ConfirmFn] = None,
) -> Dict[str, TagPlanEntry]:
    """Plan, confirm and cut release tags for the project in `context`.

    Returns the plan; nothing is written when no module needs a new tag or
    the user declines.
    """
    options = options or TagOptions()
    context.reload()
    graph = DependencyGraph(context)
    planner = ReleasePlanner(
        context,
        graph,
        increment=options.increment,
        interactive=options.interactive,
        choose=choose,
        confirm=confirm,
    )
    plan = planner.plan()
    if not any(entry.create for entry in plan.values()):
        logger.info("No valid repositories found to tag")
        return plan
    if not planner.confirm(plan):
        logger.info("Tagging cancelled")
        return plan
    planner.execute(plan)
    return plan
