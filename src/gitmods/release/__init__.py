"""Release tagging: tag recycling and the release planner."""
from gitmods.release.overrides import parse_version_overrides
from gitmods.release.planner import ReleasePlanner, TagOptions, TagPlanEntry, tag_operation
from gitmods.release.recycler import TagRecycler, find_tag_at_head

__all__ = [
    "ReleasePlanner",
    "TagOptions",
    "TagPlanEntry",
    "TagRecycler",
    "find_tag_at_head",
    "parse_version_overrides",
    "tag_operation",
]
