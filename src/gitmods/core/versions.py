"""Semantic version helpers used for conflict resolution and release tagging."""
from typing import Iterable, List, Optional

import semver

INCREMENTS = ("major", "minor", "patch")
DEFAULT_PRERELEASE = "snapshot"


def parse_version(value: Optional[str]) -> Optional[semver.Version]:
    """Parse a semantic version, tolerating a leading `v` or `=`.

    Returns None when the value is not a valid semantic version.
    """
    if not value:
        return None
    text = value.strip().lstrip("=")
    if text[:1] in ("v", "V"):
        text = text[1:]
    try:
        return semver.Version.parse(text)
    except (ValueError, TypeError):
        return None


def is_valid(value: Optional[str]) -> bool:
    return parse_version(value) is not None


def increment(version: str, kind: str) -> str:
    """Increment a version the way release tags are cut.

    A prerelease of the next release is promoted rather than bumped again:
    `0.2.0-snapshot.0` incremented by minor gives `0.2.0`, while `0.2.1`
    gives `0.3.0`.
    """
    v = parse_version(version)
    if v is None:
        raise ValueError(f"Not a valid semantic version: {version}")

    if kind == "major":
        if v.prerelease and v.minor == 0 and v.patch == 0:
            return str(semver.Version(v.major, 0, 0))
        return str(semver.Version(v.major + 1, 0, 0))
    if kind == "minor":
        if v.prerelease and v.patch == 0:
            return str(semver.Version(v.major, v.minor, 0))
        return str(semver.Version(v.major, v.minor + 1, 0))
    if kind == "patch":
        if v.prerelease:
            return str(semver.Version(v.major, v.minor, v.patch))
        return str(semver.Version(v.major, v.minor, v.patch + 1))
    raise ValueError(f"Unknown increment: {kind}")


def increment_prerelease(version: str, kind: str) -> str:
    """Advance a working version to the next prerelease (`pre<kind>`).

    The existing prerelease identifier is kept, `snapshot` is used otherwise:
    `0.2.0-snapshot.0` with minor gives `0.3.0-snapshot.0`.
    """
    v = parse_version(version)
    if v is None:
        raise ValueError(f"Not a valid semantic version: {version}")
    identifier = v.prerelease.split(".")[0] if v.prerelease else DEFAULT_PRERELEASE

    if kind == "major":
        bumped = semver.Version(v.major + 1, 0, 0)
    elif kind == "minor":
        bumped = semver.Version(v.major, v.minor + 1, 0)
    elif kind == "patch":
        bumped = semver.Version(v.major, v.minor, v.patch + 1)
    else:
        raise ValueError(f"Unknown increment: {kind}")
    return str(bumped.replace(prerelease=f"{identifier}.0"))


def next_available(tags: Iterable[str], version: str, kind: str) -> str:
    """Keep incrementing `version` by `kind` until it is not an existing tag."""
    existing = set(tags)
    candidate = version
    while True:
        candidate = increment(candidate, kind)
        if candidate not in existing:
            return candidate


def sort_tags(tags: Iterable[str]) -> List[str]:
    """Valid semantic versions first, highest first; invalid ones after, in order."""
    tags = list(tags)
    valid = [t for t in tags if is_valid(t)]
    invalid = [t for t in tags if not is_valid(t)]
    valid.sort(key=parse_version, reverse=True)
    return valid + invalid


def latest(values: Iterable[str]) -> Optional[str]:
    """Return the value with the highest valid semantic version, if any."""
    best = None
    best_version = None
    for value in values:
        v = parse_version(value)
        if v is not None and (best_version is None or v > best_version):
            best, best_version = value, v
    return best
