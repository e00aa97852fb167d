"""Pick one reference for a module declared differently by several ancestors."""
import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

import click

from gitmods.core import versions
from gitmods.core.reference import (
    RepositoryReference,
    normalize_url,
    parse_reference,
    reference_key,
)
from gitmods.modules.graph import ModuleNode, distinct_references

logger = logging.getLogger(__name__)

PromptFn = Callable[[str, List[RepositoryReference], int], int]


def prompt_for_reference(name: str, candidates: List[RepositoryReference], default: int) -> int:
    """Ask the user which candidate to use; returns its index."""
    click.echo(f"{name}: conflicting versions declared")
    for index, candidate in enumerate(candidates, start=1):
        click.echo(f"  {index}) {candidate}")
    choice = click.prompt(
        "Use which version?",
        type=click.IntRange(1, len(candidates)),
        default=default + 1,
    )
    return choice - 1


class ConflictResolver:
    """Chooses the canonical reference of a module.

    Priority: explicit override, single candidate, highest semantic version
    (use_latest), interactive choice, first declared candidate. The resolver
    only decides; relocating the losers' working copies is left to the
    synchronization engine.
    """

    def __init__(
        self,
        overrides: Optional[Dict[str, str]] = None,
        use_latest: bool = False,
        interactive: bool = False,
        prompt: Optional[PromptFn] = None,
    ):
        self.overrides = dict(overrides or {})
        self.use_latest = use_latest
        self.interactive = interactive
        self.prompt = prompt or prompt_for_reference
        self._decisions: Dict[Tuple[str, FrozenSet[str]], RepositoryReference] = {}

    def candidates(self, node: ModuleNode) -> List[RepositoryReference]:
        return distinct_references(node.refs)

    def has_conflict(self, node: ModuleNode) -> bool:
        return len(self.candidates(node)) > 1

    def has_identity_conflict(self, node: ModuleNode) -> bool:
        """True when candidates point at different repositories, not just targets."""
        return len({normalize_url(c.url) for c in self.candidates(node)}) > 1

    def resolve(self, node: ModuleNode) -> Optional[RepositoryReference]:
        """Choose the reference to use for `node` and record it on the node."""
        candidates = self.candidates(node)
        key = (node.name, frozenset(reference_key(c) for c in candidates))
        if key not in self._decisions:
            chosen = self._choose(node.name, candidates)
            if chosen is None:
                return None
            self._decisions[key] = chosen
        node.resolved = self._decisions[key]
        return node.resolved

    def _choose(
        self, name: str, candidates: List[RepositoryReference]
    ) -> Optional[RepositoryReference]:
        override = self.overrides.get(name)
        if override:
            return self._apply_override(override, candidates)
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        logger.info(
            f"{name}: {len(candidates)} conflicting declarations: "
            f"{', '.join(str(c) for c in candidates)}"
        )
        if self.use_latest:
            best = versions.latest(c.target for c in candidates)
            if best is not None:
                chosen = next(c for c in candidates if c.target == best)
                logger.info(f"{name}: using latest version {chosen.target}")
                return chosen
            logger.warning(f"{name}: no candidate has a valid semantic version")
        if self.interactive:
            return candidates[self.prompt(name, candidates, 0)]
        logger.info(f"{name}: using first declared {candidates[0]}")
        return candidates[0]

    def _apply_override(
        self, override: str, candidates: List[RepositoryReference]
    ) -> Optional[RepositoryReference]:
        if "#" in override or "://" in override:
            return parse_reference(override)
        for candidate in candidates:
            if candidate.target == override:
                return candidate
        if not candidates:
            return None
        return candidates[0].with_target(override)
