"""Domain models shared by the session, dispatch and enforcement layers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

type GroupId = str
type UserId = str
type Sleep = Callable[[float], Awaitable[None]]


class EventKind(StrEnum):
    """Classification of one platform event."""

    CHAT_MESSAGE = "chat_message"
    THREAD_RENAMED = "thread_renamed"
    MEMBER_RENAMED = "member_renamed"
    THREAD_PHOTO_CHANGED = "thread_photo_changed"
    MEMBER_ADDED = "member_added"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True, slots=True, kw_only=True)
class PlatformEvent:
    """Normalized platform event consumed by the dispatcher."""

    kind: EventKind
    group_id: GroupId = ""
    author_id: UserId = ""
    body: str = ""
    mentions: dict[UserId, str] = field(default_factory=dict)
    title: str | None = None
    member_id: UserId | None = None
    nickname: str | None = None
    photo_ref: str | None = None
    added_ids: tuple[UserId, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class BotSettings:
    """Operator settings shared by reference across components."""

    prefix: str = "/"
    admin_id: UserId = ""
    bot_nickname: str = "HR BOT"

    def is_admin(self, user_id: UserId) -> bool:
        return bool(self.admin_id) and user_id == self.admin_id


@dataclass(frozen=True, slots=True, kw_only=True)
class ThreadInfo:
    """Snapshot of one group as reported by the platform."""

    thread_id: GroupId
    name: str = ""
    participant_ids: tuple[UserId, ...] = ()
    nicknames: dict[UserId, str] = field(default_factory=dict)
    image_src: str | None = None

    @classmethod
    def from_payload(cls, thread_id: GroupId, payload: dict[str, Any]) -> ThreadInfo:
        nicknames = payload.get("nicknames")
        participants = payload.get("participantIDs") or []
        return cls(
            thread_id=str(payload.get("threadID") or thread_id),
            name=str(payload.get("threadName") or payload.get("name") or ""),
            participant_ids=tuple(str(p) for p in participants),
            nicknames={str(k): str(v) for k, v in nicknames.items()} if isinstance(nicknames, dict) else {},
            image_src=str(payload["imageSrc"]) if payload.get("imageSrc") else None,
        )


@dataclass(frozen=True, slots=True)
class Mention:
    tag: str
    id: UserId
    from_index: int


@dataclass(frozen=True, slots=True, kw_only=True)
class OutgoingMessage:
    """Message body plus mention tags, ready for the transport."""

    body: str
    mentions: tuple[Mention, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "body": self.body,
            "mentions": [{"tag": m.tag, "id": m.id, "fromIndex": m.from_index} for m in self.mentions],
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class CommandContext:
    """Per-message command context; never retained after the handler returns."""

    sender_id: UserId
    group_id: GroupId
    raw_text: str
    command: str
    args: tuple[str, ...]
    is_admin: bool
    mentions: dict[UserId, str] = field(default_factory=dict)

    @property
    def argument_text(self) -> str:
        return " ".join(self.args).strip()
