"""Counters for actions, corrections and reconnects, surfaced on the status page."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

type Labels = tuple[tuple[str, str], ...]


def _label_key(labels: Labels) -> str:
    return ",".join(f"{k}={v}" for k, v in labels)


@dataclass(slots=True)
class InMemoryTelemetry:
    """Totals per counter plus a breakdown by label set.

    ``incr("action_failed", labels=(("action", "set_title"),))`` bumps the
    ``action_failed`` total and its ``action=set_title`` bucket, so the status
    page can show which platform calls keep failing.
    """

    counters: Counter[str] = field(default_factory=Counter)
    breakdown: defaultdict[str, Counter[str]] = field(default_factory=lambda: defaultdict(Counter))

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        self.counters[name] += int(value)
        if labels:
            key = _label_key(labels)
            self.breakdown[name][key] += int(value)
            logger.debug("telemetry {} += {} ({})", name, value, key)
        else:
            logger.debug("telemetry {} += {}", name, value)

    def get(self, name: str, labels: Labels = ()) -> int:
        if labels:
            return self.breakdown.get(name, Counter()).get(_label_key(labels), 0)
        return self.counters.get(name, 0)

    def snapshot(self) -> dict[str, Any]:
        return {
            "totals": dict(self.counters),
            "breakdown": {name: dict(buckets) for name, buckets in self.breakdown.items()},
        }
