"""Explicit version choices given on the command line or in a versions file."""
import json
import re
from pathlib import Path
from typing import Dict, Iterable, Optional

from gitmods.core.errors import VersionOverrideError
from gitmods.modules.graph import DependencyGraph

_VERSION_PATTERN = re.compile(r"^(.*)=(.*)$")


def load_versions_file(path: Path) -> Dict[str, str]:
    """Read a `{"name": "tag"}` JSON file.

    Raises:
        VersionOverrideError: If the file is unreadable or not a name -> tag object
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise VersionOverrideError(f"Cannot read versions file {path}: {e}")
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise VersionOverrideError(f"Versions file {path} must map module names to tags")
    return data


def parse_version_overrides(
    graph: DependencyGraph,
    versions: Iterable[str] = (),
    input_file: Optional[Path] = None,
) -> Dict[str, str]:
    """Merge a versions file and `NAME=TAG` strings into a name -> tag map.

    Command line names are matched case-insensitively against the graph and
    win over the file.
    """
    overrides: Dict[str, str] = {}
    if input_file:
        overrides.update(load_versions_file(input_file))

    for value in versions:
        match = _VERSION_PATTERN.match(value)
        if not match:
            raise VersionOverrideError(
                f"Version string provided does not have DEPENDENCY=TAGNAME format [version={value}]"
            )
        name, tag = match.group(1), match.group(2)
        node = graph.find(name)
        if node is None:
            raise VersionOverrideError(f'Dependency "{name}" could not be found!')
        overrides[node.name] = tag
    return overrides
