"""Per-group lock policy state and the drift-correction engine."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from copy import deepcopy
from dataclasses import dataclass, field

from loguru import logger

from lockbot.core.actions import ActionResult, ActionRunner
from lockbot.core.models import BotSettings, EventKind, GroupId, PlatformEvent, Sleep, UserId
from lockbot.core.telemetry import InMemoryTelemetry


@dataclass(slots=True)
class NicknamePolicy:
    """Default nickname plus per-member overrides. An empty string means "no nickname"."""

    default: str | None = None
    overrides: dict[UserId, str] = field(default_factory=dict)

    def effective_for(self, member_id: UserId) -> str | None:
        return self.overrides.get(member_id, self.default)


@dataclass(slots=True)
class GroupLockPolicy:
    title: str | None = None
    nicknames: NicknamePolicy | None = None
    photo: str | None = None

    def is_empty(self) -> bool:
        return self.title is None and self.nicknames is None and self.photo is None

    def describe(self) -> list[str]:
        lines: list[str] = []
        if self.title is not None:
            lines.append(f"title: {self.title!r}" if self.title else "title: removed")
        if self.nicknames is not None:
            default = self.nicknames.default
            if default is not None:
                lines.append(f"nicknames: {default!r}" if default else "nicknames: removed")
            if self.nicknames.overrides:
                lines.append(f"nickname overrides: {len(self.nicknames.overrides)}")
        if self.photo is not None:
            lines.append("photo: locked")
        return lines


class PolicyStore:
    """In-memory lock policies keyed by group. A missing entry means nothing is enforced."""

    def __init__(self) -> None:
        self._policies: dict[GroupId, GroupLockPolicy] = {}

    def get(self, group_id: GroupId) -> GroupLockPolicy | None:
        return self._policies.get(group_id)

    def snapshot(self) -> dict[GroupId, GroupLockPolicy]:
        return deepcopy(self._policies)

    def _edit(self, group_id: GroupId) -> GroupLockPolicy:
        return self._policies.setdefault(group_id, GroupLockPolicy())

    def _prune(self, group_id: GroupId) -> None:
        policy = self._policies.get(group_id)
        if policy is not None and policy.is_empty():
            del self._policies[group_id]

    def set_title(self, group_id: GroupId, title: str) -> None:
        self._edit(group_id).title = title

    def set_nickname_default(self, group_id: GroupId, nickname: str) -> NicknamePolicy:
        policy = self._edit(group_id)
        if policy.nicknames is None:
            policy.nicknames = NicknamePolicy()
        policy.nicknames.default = nickname
        return policy.nicknames

    def set_nickname_override(self, group_id: GroupId, member_id: UserId, nickname: str) -> NicknamePolicy:
        policy = self._edit(group_id)
        if policy.nicknames is None:
            policy.nicknames = NicknamePolicy()
        policy.nicknames.overrides[member_id] = nickname
        return policy.nicknames

    def set_photo(self, group_id: GroupId, photo_ref: str) -> None:
        self._edit(group_id).photo = photo_ref

    def clear_title(self, group_id: GroupId) -> bool:
        policy = self._policies.get(group_id)
        if policy is None or policy.title is None:
            return False
        policy.title = None
        self._prune(group_id)
        return True

    def clear_nicknames(self, group_id: GroupId) -> bool:
        policy = self._policies.get(group_id)
        if policy is None or policy.nicknames is None:
            return False
        policy.nicknames = None
        self._prune(group_id)
        return True

    def clear_photo(self, group_id: GroupId) -> bool:
        policy = self._policies.get(group_id)
        if policy is None or policy.photo is None:
            return False
        policy.photo = None
        self._prune(group_id)
        return True

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._policies

    def __len__(self) -> int:
        return len(self._policies)


def _require(value: str | None, what: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(f"{what} must not be empty")
    return text


class PolicyEnforcementEngine:
    """Re-asserts locked group attributes whenever the platform reports drift.

    Every corrective action is best-effort: a failed call is logged by the
    :class:`ActionRunner` and the policy stays active for the next drift event.
    Lock and unlock calls expect the caller to have verified the admin.
    """

    def __init__(
        self,
        *,
        store: PolicyStore,
        actions: ActionRunner,
        settings: BotSettings,
        telemetry: InMemoryTelemetry | None = None,
        fanout_spacing_seconds: float = 0.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store
        self._actions = actions
        self._settings = settings
        self._telemetry = telemetry or InMemoryTelemetry()
        self._fanout_spacing_seconds = max(0.0, fanout_spacing_seconds)
        self._sleep = sleep

    # Drift events

    async def handle_event(self, event: PlatformEvent) -> ActionResult | None:
        if event.kind == EventKind.THREAD_RENAMED:
            return await self.on_thread_renamed(event.group_id, event.title)
        if event.kind == EventKind.MEMBER_RENAMED:
            return await self.on_member_renamed(event.group_id, event.member_id or "", event.nickname)
        if event.kind == EventKind.THREAD_PHOTO_CHANGED:
            return await self.on_photo_changed(event.group_id, event.photo_ref, author_id=event.author_id)
        return None

    async def on_thread_renamed(self, group_id: GroupId, title: str | None) -> ActionResult | None:
        policy = self.store.get(group_id)
        if policy is None or policy.title is None:
            return None
        if (title or "") == policy.title:
            return None
        logger.info(f"Group {group_id} renamed to {title!r}; restoring {policy.title!r}")
        return await self._correct("title", self._actions.set_title(policy.title, group_id))

    async def on_member_renamed(
        self, group_id: GroupId, member_id: UserId, nickname: str | None
    ) -> ActionResult | None:
        policy = self.store.get(group_id)
        if policy is None or policy.nicknames is None or not member_id:
            return None
        if self._settings.is_admin(member_id):
            return None
        expected = policy.nicknames.effective_for(member_id)
        if expected is None or (nickname or "") == expected:
            return None
        logger.info(f"Nickname of {member_id} in {group_id} changed to {nickname!r}; restoring {expected!r}")
        return await self._correct(
            "nickname", self._actions.change_nickname(expected, group_id, member_id)
        )

    async def on_photo_changed(
        self, group_id: GroupId, photo_ref: str | None, *, author_id: UserId = ""
    ) -> ActionResult | None:
        policy = self.store.get(group_id)
        if policy is None or policy.photo is None:
            return None
        # Uploads get a fresh reference, so our own restores are recognized by author.
        if author_id and author_id == self._actions.current_user_id():
            return None
        if photo_ref == policy.photo:
            return None
        logger.info(f"Photo of group {group_id} changed; restoring locked photo")
        return await self._correct("photo", self._actions.change_photo(policy.photo, group_id))

    async def _correct(self, field_name: str, pending: Awaitable[ActionResult]) -> ActionResult:
        result = await pending
        self._telemetry.incr(
            "correction_applied" if result.ok else "correction_failed",
            labels=(("field", field_name),),
        )
        return result

    # Lock activation

    async def lock_title(self, group_id: GroupId, title: str) -> ActionResult:
        title = _require(title, "title")
        self.store.set_title(group_id, title)
        logger.info(f"Title of {group_id} locked to {title!r}")
        return await self._actions.set_title(title, group_id)

    async def remove_title(self, group_id: GroupId) -> ActionResult:
        """Clear the group title and keep it cleared."""
        self.store.set_title(group_id, "")
        logger.info(f"Title of {group_id} locked to empty")
        return await self._actions.set_title("", group_id)

    async def lock_nicknames(self, group_id: GroupId, nickname: str) -> list[ActionResult]:
        nickname = _require(nickname, "nickname")
        self.store.set_nickname_default(group_id, nickname)
        logger.info(f"Nicknames in {group_id} locked to {nickname!r}")
        return await self._apply_nicknames(group_id)

    async def remove_all_nicknames(self, group_id: GroupId) -> list[ActionResult]:
        """Clear every member nickname and keep them cleared."""
        self.store.set_nickname_default(group_id, "")
        logger.info(f"Nicknames in {group_id} locked to empty")
        return await self._apply_nicknames(group_id)

    async def lock_member_nickname(self, group_id: GroupId, member_id: UserId, nickname: str) -> ActionResult | None:
        member_id = _require(member_id, "member")
        nickname = _require(nickname, "nickname")
        if self._settings.is_admin(member_id):
            raise ValueError("the admin's nickname cannot be locked")
        self.store.set_nickname_override(group_id, member_id, nickname)
        logger.info(f"Nickname of {member_id} in {group_id} locked to {nickname!r}")
        return await self._actions.change_nickname(nickname, group_id, member_id)

    async def lock_photo(self, group_id: GroupId, photo_ref: str | None = None) -> ActionResult:
        """Lock the group photo to ``photo_ref`` or, when omitted, to the current photo."""
        if photo_ref:
            self.store.set_photo(group_id, photo_ref)
            logger.info(f"Photo of {group_id} locked to {photo_ref}")
            return await self._actions.change_photo(photo_ref, group_id)

        info = await self._actions.get_thread_info(group_id)
        if not info.ok:
            return info
        current = info.value.image_src
        if not current:
            raise ValueError("group has no photo to lock")
        self.store.set_photo(group_id, current)
        logger.info(f"Photo of {group_id} locked to its current image")
        return info

    async def _apply_nicknames(self, group_id: GroupId) -> list[ActionResult]:
        policy = self.store.get(group_id)
        if policy is None or policy.nicknames is None:
            return []
        info = await self._actions.get_thread_info(group_id)
        if not info.ok:
            return [info]

        results: list[ActionResult] = []
        for member_id in info.value.participant_ids:
            if self._settings.is_admin(member_id):
                continue
            expected = policy.nicknames.effective_for(member_id)
            if expected is None or info.value.nicknames.get(member_id, "") == expected:
                continue
            results.append(await self._actions.change_nickname(expected, group_id, member_id))
            if self._fanout_spacing_seconds:
                await self._sleep(self._fanout_spacing_seconds)
        return results

    # Lock deactivation

    def unlock_title(self, group_id: GroupId) -> bool:
        removed = self.store.clear_title(group_id)
        if removed:
            logger.info(f"Title of {group_id} unlocked")
        return removed

    def unlock_nicknames(self, group_id: GroupId) -> bool:
        removed = self.store.clear_nicknames(group_id)
        if removed:
            logger.info(f"Nicknames in {group_id} unlocked")
        return removed

    def unlock_photo(self, group_id: GroupId) -> bool:
        removed = self.store.clear_photo(group_id)
        if removed:
            logger.info(f"Photo of {group_id} unlocked")
        return removed
