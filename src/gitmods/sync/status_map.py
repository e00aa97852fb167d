"""Per-invocation bookkeeping of what happened to each module."""
from dataclasses import dataclass
from typing import Dict, List


@dataclass
class DependencyStatus:
    inspected: bool = False
    changed: bool = False
    up_to_date: bool = False
    failed: bool = False


class DependencyStatusMap:
    """Monotonic flags per module name, scoped to one command invocation."""

    def __init__(self):
        self._map: Dict[str, DependencyStatus] = {}

    def _get(self, name: str) -> DependencyStatus:
        if name not in self._map:
            self._map[name] = DependencyStatus()
        return self._map[name]

    def mark_inspected(self, name: str) -> None:
        self._get(name).inspected = True

    def mark_changed(self, name: str) -> None:
        self._get(name).changed = True

    def mark_up_to_date(self, name: str) -> None:
        self._get(name).up_to_date = True

    def mark_failed(self, name: str) -> None:
        self._get(name).failed = True

    def is_inspected(self, name: str) -> bool:
        return name in self._map and self._map[name].inspected

    def is_changed(self, name: str) -> bool:
        return name in self._map and self._map[name].changed

    def is_up_to_date(self, name: str) -> bool:
        return name in self._map and self._map[name].up_to_date

    def is_failed(self, name: str) -> bool:
        return name in self._map and self._map[name].failed

    def inspected_count(self) -> int:
        return sum(1 for s in self._map.values() if s.inspected)

    def changed_count(self) -> int:
        return sum(1 for s in self._map.values() if s.changed)

    def failed_count(self) -> int:
        return sum(1 for s in self._map.values() if s.failed)

    def names(self) -> List[str]:
        return list(self._map)

    def get(self, name: str) -> DependencyStatus:
        return self._map.get(name, DependencyStatus())
