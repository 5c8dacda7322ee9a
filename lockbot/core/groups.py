"""Set of groups the session currently belongs to."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

from lockbot.core.models import GroupId


class JoinedGroupSet:
    """Group membership used for fan-out actions; observers see every change."""

    def __init__(self, on_change: Callable[[list[GroupId]], None] | None = None) -> None:
        self._groups: set[GroupId] = set()
        self._on_change = on_change

    def replace(self, group_ids: Iterable[GroupId]) -> None:
        self._groups = {str(g) for g in group_ids if g}
        self._notify()

    def add(self, group_id: GroupId) -> bool:
        if not group_id or group_id in self._groups:
            return False
        self._groups.add(group_id)
        self._notify()
        return True

    def discard(self, group_id: GroupId) -> bool:
        if group_id not in self._groups:
            return False
        self._groups.discard(group_id)
        self._notify()
        return True

    def snapshot(self) -> list[GroupId]:
        return sorted(self._groups)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._groups

    def __iter__(self) -> Iterator[GroupId]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._groups)
