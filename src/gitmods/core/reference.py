"""Repository references: `<url>[#target]` strings and checkout targets."""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_TARGET = "master"

COMMIT_PATTERN = re.compile(r"^[0-9a-fA-F]{7,40}$")
_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9.-]*\+")
_SCHEME_CREDENTIALS = re.compile(r"^https?://([^/@]*@)?", re.IGNORECASE)
_LINK_UNSAFE = re.compile(r'[\\/:"*?<>|.]+')


class TargetKind(str, Enum):
    """Which kind of ref a working copy is checked out at."""

    BRANCH = "branch"
    TAG = "tag"
    COMMIT = "commit"


@dataclass(frozen=True)
class Target:
    """A checkout target: exactly one of branch, tag or commit."""

    kind: TargetKind
    name: str

    @classmethod
    def for_branch(cls, name: str) -> "Target":
        return cls(TargetKind.BRANCH, name)

    @classmethod
    def for_tag(cls, name: str) -> "Target":
        return cls(TargetKind.TAG, name)

    @classmethod
    def for_commit(cls, name: str) -> "Target":
        return cls(TargetKind.COMMIT, name)

    @property
    def branch(self) -> Optional[str]:
        return self.name if self.kind is TargetKind.BRANCH else None

    @property
    def tag(self) -> Optional[str]:
        return self.name if self.kind is TargetKind.TAG else None

    @property
    def commit(self) -> Optional[str]:
        return self.name if self.kind is TargetKind.COMMIT else None

    def to_dict(self) -> dict:
        """Serialize as the `{branch|tag|commit: name}` object used in manifests."""
        return {self.kind.value: self.name}

    @classmethod
    def from_dict(cls, data: dict) -> Optional["Target"]:
        for kind in TargetKind:
            value = data.get(kind.value)
            if value:
                return cls(kind, value)
        return None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class RepositoryReference:
    """A module location: repository URL plus the target to check out."""

    url: str
    target: str = DEFAULT_TARGET

    def with_target(self, target: str) -> "RepositoryReference":
        return RepositoryReference(self.url, target)

    def __str__(self) -> str:
        return format_reference(self.url, self.target)


def parse_reference(value: str) -> RepositoryReference:
    """Parse a manifest dependency string.

    Examples:
        git+https://h/r.git#v1 -> url=https://h/r.git, target=v1
        https://h/r.git -> url=https://h/r.git, target=master
    """
    value = _SCHEME_PREFIX.sub("", value)

    url, sep, target = value.partition("#")
    if not sep:
        target = DEFAULT_TARGET
    return RepositoryReference(url=url, target=target)


def format_reference(url: str, target: str) -> str:
    return f"{url}#{target}"


def normalize_url(url: str) -> str:
    """Strip scheme, credentials and trailing slash so URLs compare by identity."""
    stripped = _SCHEME_CREDENTIALS.sub("", url.strip())
    return stripped.rstrip("/").lower()


def urls_match(lhs: str, rhs: str) -> bool:
    return normalize_url(lhs) == normalize_url(rhs)


def reference_key(reference: RepositoryReference) -> str:
    """Case-insensitive identity of a full reference (URL and target)."""
    return f"{normalize_url(reference.url)}#{reference.target.lower()}"


def link_dir_name(reference: RepositoryReference) -> str:
    """Directory name of a shared link-cache clone for this URL and target."""
    result = f"{reference.url}~{reference.target}"
    result = re.sub(r"^https?://", "", result)
    return _LINK_UNSAFE.sub("_", result)


def project_name_from_url(url: str) -> str:
    clean_url = url.rstrip("/")
    if clean_url.endswith(".git"):
        clean_url = clean_url[:-4]
    return re.split(r"[/:\\]", clean_url)[-1]


def looks_like_commit(value: str) -> bool:
    return bool(COMMIT_PATTERN.match(value))
