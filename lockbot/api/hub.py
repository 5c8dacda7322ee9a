"""Fan-out of log lines and group updates to dashboard viewers."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

from loguru import logger

type Frame = dict[str, Any]


class DashboardHub:
    """
    Loguru sink plus a subscriber registry for dashboard websockets.

    Every viewer gets its own bounded queue; when a slow viewer falls behind,
    its oldest frames are dropped instead of blocking the logger.
    """

    def __init__(self, *, backlog: int = 200, viewer_maxsize: int = 500):
        self._backlog: deque[str] = deque(maxlen=max(0, backlog))
        self._viewer_maxsize = max(1, viewer_maxsize)
        self._viewers: set[asyncio.Queue[Frame]] = set()
        self._groups: list[str] = []
        self._dropped = 0

    @property
    def backlog(self) -> list[str]:
        return list(self._backlog)

    @property
    def groups(self) -> list[str]:
        return list(self._groups)

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    @staticmethod
    def format_record(record: dict[str, Any]) -> str:
        return f"[{record['time'].isoformat()}] {record['level'].name}: {record['message']}"

    def sink(self, message: Any) -> None:
        """Loguru sink: ``logger.add(hub.sink, level="INFO")``."""
        self.publish_log(self.format_record(message.record))

    def publish_log(self, line: str) -> None:
        self._backlog.append(line)
        self._broadcast({"event": "botlog", "data": line})

    def publish_groups(self, groups: list[str]) -> None:
        self._groups = list(groups)
        self._broadcast({"event": "groupsUpdate", "data": self.groups})

    def subscribe(self, status_line: str | None = None) -> asyncio.Queue[Frame]:
        """Register a viewer; its queue starts with the status line, backlog and groups."""
        queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=self._viewer_maxsize)
        initial: list[Frame] = []
        if status_line:
            initial.append({"event": "botlog", "data": status_line})
        initial.extend({"event": "botlog", "data": line} for line in self._backlog)
        initial.append({"event": "groupsUpdate", "data": self.groups})
        for frame in initial:
            self._put(queue, frame)
        self._viewers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Frame]) -> None:
        self._viewers.discard(queue)

    def _broadcast(self, frame: Frame) -> None:
        for queue in list(self._viewers):
            self._put(queue, frame)

    def _put(self, queue: asyncio.Queue[Frame], frame: Frame) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self._dropped += 1
            if self._dropped == 1 or self._dropped % 100 == 0:
                # Bypass our own sink to avoid feeding the overflow back in.
                logger.bind(dashboard=False).warning(f"Dashboard viewer queue overflow: dropped={self._dropped}")
        queue.put_nowait(frame)
