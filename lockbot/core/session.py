"""Session lifecycle: login, startup sync, listening and reconnect policy."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from loguru import logger

from lockbot.config.loader import CredentialStore
from lockbot.config.schema import TimingsConfig
from lockbot.core.actions import ActionRunner
from lockbot.core.dispatcher import EventDispatcher
from lockbot.core.groups import JoinedGroupSet
from lockbot.core.models import BotSettings, PlatformEvent, Sleep
from lockbot.core.telemetry import InMemoryTelemetry
from lockbot.errors import ListenerError, LoginError

if TYPE_CHECKING:
    from lockbot.transport.base import Transport, TransportSession

LISTEN_OPTIONS: dict[str, Any] = {"selfListen": True, "listenEvents": True, "updatePresence": False}


class SessionState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    RELOGIN = "relogin"


@dataclass(slots=True)
class ReconnectState:
    """Listener failure counter plus the last credentials known to work."""

    attempts: int = 0
    last_good_app_state: list[Any] = field(default_factory=list)

    def reset(self) -> None:
        self.attempts = 0

    def record_failure(self) -> int:
        self.attempts += 1
        return self.attempts


@dataclass(frozen=True, slots=True)
class Session:
    """The live handle plus what it was started with. Replaced wholesale on reconnect."""

    handle: TransportSession
    user_id: str
    prefix: str
    admin_id: str


class SessionManager:
    """Owns the single live transport session and keeps it alive.

    Listener failures go through a two-tier policy: up to
    ``max_listener_restarts`` consecutive failures restart the listener on the
    same handle after ``listener_retry_seconds``; the next failure discards
    the handle and logs in again with the last known good credentials.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        settings: BotSettings,
        credentials: CredentialStore,
        groups: JoinedGroupSet,
        dispatcher: EventDispatcher,
        timings: TimingsConfig | None = None,
        startup_notice: str = "",
        welcome_message: str = "",
        telemetry: InMemoryTelemetry | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._settings = settings
        self.credentials = credentials
        self.groups = groups
        self._dispatcher = dispatcher
        self.timings = timings or TimingsConfig()
        self.startup_notice = startup_notice
        self.welcome_message = welcome_message
        self._telemetry = telemetry or InMemoryTelemetry()
        self._sleep = sleep
        self.actions = ActionRunner(lambda: self.handle, telemetry=self._telemetry)
        self.state = SessionState.IDLE
        self.reconnect = ReconnectState()
        self._session: Session | None = None
        self._saver_task: asyncio.Task[None] | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def handle(self) -> TransportSession | None:
        return self._session.handle if self._session else None

    # Lifecycle

    async def run(
        self,
        app_state: list[Any] | None = None,
        prefix: str | None = None,
        admin_id: str | None = None,
    ) -> None:
        """Log in, then listen forever, recovering from every listener failure."""
        await self.start(app_state, prefix, admin_id)
        while True:
            try:
                await self.listen_once()
            except ListenerError as e:
                await self.handle_listener_error(e)

    async def start(
        self,
        app_state: list[Any] | None = None,
        prefix: str | None = None,
        admin_id: str | None = None,
    ) -> Session:
        """Log in (retrying forever on LoginError), sync state and run startup actions."""
        if app_state:
            self.reconnect.last_good_app_state = list(app_state)
        if prefix:
            self._settings.prefix = prefix
        if admin_id:
            self._settings.admin_id = admin_id
        self.reconnect.reset()

        logger.info("Initializing session...")
        while True:
            self.state = SessionState.CONNECTING
            await self._discard_handle()
            try:
                handle = await self._transport.login(self.reconnect.last_good_app_state)
                break
            except LoginError as e:
                self._telemetry.incr("login_failed")
                logger.error(f"Login error: {e}. Retrying in {self.timings.login_retry_seconds:g} seconds.")
                await self._sleep(self.timings.login_retry_seconds)

        self._session = Session(
            handle=handle,
            user_id=str(handle.get_current_user_id()),
            prefix=self._settings.prefix,
            admin_id=self._settings.admin_id,
        )
        self.state = SessionState.CONNECTED
        self.reconnect.reset()
        logger.info(f"Successfully logged in as {self._session.user_id}.")

        await self.actions.set_options(**LISTEN_OPTIONS)
        await self.sync_groups()
        await self.persist_credentials()
        self._start_credential_saver()

        await self._sleep(self.timings.settle_seconds)
        await self.run_startup_actions()
        return self._session

    async def listen_once(self) -> None:
        """Start the listener on the current handle and dispatch until it fails."""
        handle = self.handle
        if handle is None:
            raise ListenerError("no active session")
        try:
            stream = await handle.start_listening()
        except ListenerError:
            raise
        except Exception as e:
            raise ListenerError(f"listener failed to start: {e}") from e

        self.state = SessionState.CONNECTED
        logger.info("Listener started.")
        await self._dispatcher.consume(self._track_health(stream))
        raise ListenerError("event stream ended")

    async def _track_health(self, stream: AsyncIterator[Any]) -> AsyncIterator[Any]:
        """Pass events through, resetting the failure counter once the stream delivers."""
        async for raw in stream:
            if self.reconnect.attempts:
                logger.info(f"Listener healthy again after {self.reconnect.attempts} failed attempt(s).")
                self.reconnect.reset()
            yield raw

    async def handle_listener_error(self, error: Exception) -> None:
        """Apply the reconnect policy after one listener failure."""
        self.state = SessionState.RECONNECTING
        attempt = self.reconnect.record_failure()
        self._telemetry.incr("listener_failed")
        logger.error(f"Listener error: {error}. Reconnect attempt #{attempt}...")
        await self._stop_listener()

        if attempt > self.timings.max_listener_restarts:
            self.state = SessionState.RELOGIN
            logger.error("Maximum reconnect attempts reached. Restarting login process.")
            await self.start()
            return

        await self._sleep(self.timings.listener_retry_seconds)

    async def shutdown(self) -> None:
        """Stop timers and close the live handle."""
        if self._saver_task is not None:
            self._saver_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._saver_task
            self._saver_task = None
        await self._discard_handle()
        self.state = SessionState.IDLE

    async def _stop_listener(self) -> None:
        handle = self.handle
        if handle is None:
            return
        try:
            await handle.stop_listening()
        except Exception as e:
            logger.warning(f"Failed to stop listener: {e}")

    async def _discard_handle(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await session.handle.close()
        except Exception as e:
            logger.warning(f"Failed to close previous session: {e}")

    # Credentials

    async def persist_credentials(self) -> bool:
        """Write the live credential blob and display name to durable storage."""
        result = await self.actions.get_app_state()
        if not result.ok:
            logger.error("Cannot save credentials: session state unavailable.")
            return False
        app_state = list(result.value or [])
        if not app_state:
            logger.error("Cannot save credentials: session returned an empty state.")
            return False
        self.reconnect.last_good_app_state = app_state
        try:
            self.credentials.save_credentials(app_state, self._settings.bot_nickname)
        except OSError as e:
            logger.error(f"Failed to save credentials: {e}")
            return False
        logger.info("Session credentials saved.")
        return True

    def _start_credential_saver(self) -> None:
        if self._saver_task is not None:
            self._saver_task.cancel()
            self._saver_task = None
        interval = self.timings.credential_save_interval_seconds
        if interval > 0:
            self._saver_task = asyncio.create_task(self._credential_saver_loop(interval))

    async def _credential_saver_loop(self, interval: float) -> None:
        while True:
            await self._sleep(interval)
            await self.persist_credentials()

    # Group state and startup actions

    async def sync_groups(self) -> bool:
        result = await self.actions.get_group_ids()
        if not result.ok:
            return False
        self.groups.replace(result.value)
        logger.info(f"Joined groups list updated ({len(self.groups)} groups).")
        return True

    async def run_startup_actions(self) -> None:
        await self.normalize_own_nickname()
        if self.startup_notice:
            await self.broadcast(self.startup_notice)

    async def normalize_own_nickname(self) -> None:
        """Give the session's own account the configured display name in every group."""
        user_id = self.actions.current_user_id()
        if not user_id:
            return
        nickname = self._settings.bot_nickname
        for group_id in self.groups.snapshot():
            info = await self.actions.get_thread_info(group_id)
            if info.ok and info.value.nicknames.get(user_id) != nickname:
                result = await self.actions.change_nickname(nickname, group_id, user_id)
                if result.ok:
                    logger.info(f"Bot nickname set in group {group_id}")
            await self._sleep(self.timings.fanout_spacing_seconds)

    async def broadcast(self, text: str) -> int:
        sent = 0
        for group_id in self.groups.snapshot():
            result = await self.actions.send_message(text, group_id)
            sent += int(result.ok)
            await self._sleep(self.timings.fanout_spacing_seconds)
        return sent

    async def apply_bot_nickname(self, nickname: str) -> None:
        """Change the display name, persist it and apply it everywhere."""
        self._settings.bot_nickname = nickname
        try:
            self.credentials.save_credentials(self.reconnect.last_good_app_state, nickname)
        except OSError as e:
            logger.error(f"Failed to save bot nickname: {e}")
        await self.normalize_own_nickname()

    async def on_member_added(self, event: PlatformEvent) -> None:
        """Handle being added to a new group."""
        user_id = self.actions.current_user_id()
        if not user_id or user_id not in event.added_ids:
            return
        self.groups.add(event.group_id)
        await self.actions.change_nickname(self._settings.bot_nickname, event.group_id, user_id)
        if self.welcome_message:
            await self.actions.send_message(self.welcome_message, event.group_id)
        logger.info(f"Bot added to new group: {event.group_id}.")
