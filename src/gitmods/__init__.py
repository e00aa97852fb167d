"""gitmods - manage a tree of git repositories declared in JSON manifests."""

__version__ = "0.1.0"
