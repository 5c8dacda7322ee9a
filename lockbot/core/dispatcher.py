"""Event classification and serialized dispatch.

Events are handled one at a time in arrival order. A handler failure is
logged and swallowed; a stream failure (``ListenerError``) is not, so the
session manager can run its reconnect policy.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from loguru import logger

from lockbot.core.models import EventKind, PlatformEvent
from lockbot.core.telemetry import InMemoryTelemetry
from lockbot.errors import HandlerError

type EventHandler = Callable[[PlatformEvent], Awaitable[object]]

_MESSAGE_TYPES = frozenset({"message", "message_reply"})
_LOG_KINDS = {
    "log:thread-name": EventKind.THREAD_RENAMED,
    "log:user-nickname": EventKind.MEMBER_RENAMED,
    "log:thread-image": EventKind.THREAD_PHOTO_CHANGED,
    "log:subscribe": EventKind.MEMBER_ADDED,
}


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def classify(raw: Any) -> PlatformEvent:
    """Normalize one raw platform event into a :class:`PlatformEvent`."""
    if not isinstance(raw, dict):
        return PlatformEvent(kind=EventKind.UNRECOGNIZED)

    group_id = _text(raw.get("threadID") or raw.get("threadId"))
    author_id = _text(raw.get("senderID") or raw.get("senderId") or raw.get("author"))
    event_type = raw.get("type")

    if event_type in _MESSAGE_TYPES:
        mentions = raw.get("mentions")
        return PlatformEvent(
            kind=EventKind.CHAT_MESSAGE,
            group_id=group_id,
            author_id=author_id,
            body=_text(raw.get("body") or raw.get("message")),
            mentions={str(k): _text(v) for k, v in mentions.items()} if isinstance(mentions, dict) else {},
            raw=raw,
        )

    if event_type == "change_thread_image":
        image = raw.get("image") if isinstance(raw.get("image"), dict) else {}
        return PlatformEvent(
            kind=EventKind.THREAD_PHOTO_CHANGED,
            group_id=group_id,
            author_id=author_id,
            photo_ref=_text(image.get("url")) or None,
            raw=raw,
        )

    kind = _LOG_KINDS.get(_text(raw.get("logMessageType")))
    if kind is None:
        return PlatformEvent(kind=EventKind.UNRECOGNIZED, group_id=group_id, author_id=author_id, raw=raw)

    data = raw.get("logMessageData") if isinstance(raw.get("logMessageData"), dict) else {}
    if kind == EventKind.THREAD_RENAMED:
        return PlatformEvent(kind=kind, group_id=group_id, author_id=author_id, title=_text(data.get("name")), raw=raw)
    if kind == EventKind.MEMBER_RENAMED:
        return PlatformEvent(
            kind=kind,
            group_id=group_id,
            author_id=author_id,
            member_id=_text(data.get("participant_id")) or None,
            nickname=_text(data.get("nickname")),
            raw=raw,
        )
    if kind == EventKind.THREAD_PHOTO_CHANGED:
        return PlatformEvent(
            kind=kind,
            group_id=group_id,
            author_id=author_id,
            photo_ref=_text(data.get("url")) or None,
            raw=raw,
        )

    added = data.get("addedParticipants") if isinstance(data.get("addedParticipants"), list) else []
    return PlatformEvent(
        kind=kind,
        group_id=group_id,
        author_id=author_id,
        added_ids=tuple(_text(p.get("userFbId")) for p in added if isinstance(p, dict) and p.get("userFbId")),
        raw=raw,
    )


class EventDispatcher:
    """Routes each classified event to exactly one registered handler."""

    def __init__(self, telemetry: InMemoryTelemetry | None = None) -> None:
        self._handlers: dict[EventKind, EventHandler] = {}
        self._telemetry = telemetry or InMemoryTelemetry()

    def register(self, kind: EventKind, handler: EventHandler) -> None:
        if kind == EventKind.UNRECOGNIZED:
            raise ValueError("unrecognized events are ignored and cannot have a handler")
        self._handlers[kind] = handler

    async def dispatch(self, raw: Any) -> bool:
        """Handle one raw event. Returns True when a handler ran without raising."""
        event = classify(raw)
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.debug(f"Ignoring {event.kind} event")
            return False

        try:
            await handler(event)
        except Exception as e:
            error = HandlerError(event.kind.value, e)
            self._telemetry.incr("handler_failed", labels=(("kind", event.kind.value),))
            logger.opt(exception=e).error(f"Handler crashed: {error}. Event type: {event.kind}")
            return False
        return True

    async def consume(self, stream: AsyncIterator[Any]) -> None:
        """Dispatch every event from ``stream`` until it ends or raises."""
        async for raw in stream:
            await self.dispatch(raw)
