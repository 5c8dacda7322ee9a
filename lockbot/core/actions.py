"""Typed wrappers around transport actions with centralized failure logging."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger

from lockbot.core.models import GroupId, OutgoingMessage, ThreadInfo, UserId
from lockbot.core.telemetry import InMemoryTelemetry
from lockbot.errors import ActionError

if TYPE_CHECKING:
    from lockbot.transport.base import TransportSession


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome of one platform action."""

    action: str
    ok: bool
    value: Any = None
    error: ActionError | None = None


class ActionRunner:
    """Issues platform actions against whichever session is currently live.

    Failures never raise: they are logged here and returned as a failed
    :class:`ActionResult` so callers keep their own state untouched.
    """

    def __init__(
        self,
        handle_provider: Callable[[], TransportSession | None],
        telemetry: InMemoryTelemetry | None = None,
    ) -> None:
        self._handle_provider = handle_provider
        self._telemetry = telemetry or InMemoryTelemetry()

    @property
    def handle(self) -> TransportSession | None:
        return self._handle_provider()

    def current_user_id(self) -> UserId | None:
        handle = self.handle
        if handle is None:
            return None
        return str(handle.get_current_user_id())

    async def _run(
        self,
        action: str,
        target: str,
        call: Callable[[TransportSession], Awaitable[Any]],
    ) -> ActionResult:
        handle = self.handle
        if handle is None:
            error = ActionError(action, "no active session")
            logger.warning(f"Skipping {action} for {target}: no active session")
            self._telemetry.incr("action_failed", labels=(("action", action),))
            return ActionResult(action=action, ok=False, error=error)
        try:
            value = await call(handle)
        except Exception as e:
            error = e if isinstance(e, ActionError) else ActionError(action, str(e) or type(e).__name__)
            logger.error(f"{action} failed for {target}: {error}")
            self._telemetry.incr("action_failed", labels=(("action", action),))
            return ActionResult(action=action, ok=False, error=error)
        self._telemetry.incr("action_ok", labels=(("action", action),))
        return ActionResult(action=action, ok=True, value=value)

    async def set_options(self, **options: Any) -> ActionResult:
        return await self._run("set_options", "session", lambda h: h.set_options(**options))

    async def get_app_state(self) -> ActionResult:
        return await self._run("get_app_state", "session", lambda h: h.get_app_state())

    async def set_title(self, title: str, group_id: GroupId) -> ActionResult:
        return await self._run("set_title", group_id, lambda h: h.set_title(title, group_id))

    async def change_nickname(self, nickname: str, group_id: GroupId, user_id: UserId) -> ActionResult:
        return await self._run(
            "change_nickname",
            f"{group_id}/{user_id}",
            lambda h: h.change_nickname(nickname, group_id, user_id),
        )

    async def change_photo(self, photo_ref: str, group_id: GroupId) -> ActionResult:
        return await self._run(
            "change_thread_image", group_id, lambda h: h.change_thread_image(photo_ref, group_id)
        )

    async def send_message(self, message: OutgoingMessage | str, group_id: GroupId) -> ActionResult:
        if isinstance(message, str):
            message = OutgoingMessage(body=message)
        payload = message.to_payload()
        return await self._run("send_message", group_id, lambda h: h.send_message(payload, group_id))

    async def get_thread_info(self, group_id: GroupId) -> ActionResult:
        async def fetch(handle: TransportSession) -> ThreadInfo:
            return ThreadInfo.from_payload(group_id, await handle.get_thread_info(group_id))

        return await self._run("get_thread_info", group_id, fetch)

    async def get_user_name(self, user_id: UserId) -> ActionResult:
        async def fetch(handle: TransportSession) -> str | None:
            info = await handle.get_user_info([user_id])
            entry = info.get(user_id) or {}
            name = entry.get("name")
            return str(name) if name else None

        return await self._run("get_user_info", user_id, fetch)

    async def get_group_ids(self, limit: int = 100) -> ActionResult:
        async def fetch(handle: TransportSession) -> list[GroupId]:
            threads = await handle.get_thread_list(limit, ["GROUP"])
            return [str(t["threadID"]) for t in threads if t.get("threadID")]

        return await self._run("get_thread_list", "session", fetch)
