"""Core exception types for gitmods."""
from typing import Iterable, Optional, Sequence


class GitmodsError(Exception):
    """Base exception for all gitmods errors."""
    pass


class GitOperationError(GitmodsError):
    """Raised when a git operation fails."""

    def __init__(
        self,
        message: str,
        args: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.git_args = list(args or [])
        self.returncode = returncode
        self.stderr = stderr


class InvalidRefError(GitmodsError):
    """Raised when a git reference cannot be resolved."""
    pass


class ManifestError(GitmodsError):
    """Raised when a manifest cannot be read or parsed."""
    pass


class ConfigError(GitmodsError):
    """Raised when the .gitmodsrc configuration file is invalid."""
    pass


class ConflictError(GitmodsError):
    """Raised when working copies hold unresolved merge conflicts."""

    def __init__(self, names: Iterable[str]):
        self.names = list(names)
        count = len(self.names)
        super().__init__(
            f"{count} conflict{'' if count == 1 else 's'} detected: {', '.join(self.names)}"
        )


class VersionOverrideError(GitmodsError):
    """Raised when a NAME=TAG version override cannot be applied."""
    pass
