"""Application bootstrap and runtime wiring."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from lockbot.api.hub import DashboardHub
from lockbot.config.loader import ConfigSubmission, CredentialStore, load_config
from lockbot.config.schema import Config
from lockbot.core.commands import CommandProcessor
from lockbot.core.dispatcher import EventDispatcher
from lockbot.core.groups import JoinedGroupSet
from lockbot.core.models import BotSettings, EventKind, Sleep
from lockbot.core.policy import PolicyEnforcementEngine, PolicyStore
from lockbot.core.session import SessionManager
from lockbot.core.telemetry import InMemoryTelemetry
from lockbot.errors import ConfigError
from lockbot.transport.bridge import BridgeTransport
from lockbot.utils.helpers import get_logs_path

if TYPE_CHECKING:
    from lockbot.transport.base import Transport

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def configure_logging(hub: DashboardHub | None = None, *, verbose: bool = False, log_dir: Path | None = None) -> None:
    """Route loguru to stderr, the dashboard hub and a rotating file."""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if hub is not None:
        logger.add(hub.sink, level="INFO", filter=lambda record: record["extra"].get("dashboard", True))
    directory = log_dir or get_logs_path()
    logger.add(directory / "lockbot.log", level="DEBUG", rotation="10 MB", retention=5)


def load_startup_config(path: Path | None = None) -> Config:
    """Load config for startup; a corrupt file is logged and leaves the bot idle."""
    try:
        return load_config(path)
    except ConfigError as e:
        logger.error(f"{e}. Staying idle until a configuration is submitted.")
        return Config()


@dataclass(slots=True)
class LockbotRuntime:
    """Lifecycle holder for the composed bot."""

    config: Config
    settings: BotSettings
    credentials: CredentialStore
    groups: JoinedGroupSet
    telemetry: InMemoryTelemetry
    dispatcher: EventDispatcher
    session_manager: SessionManager
    engine: PolicyEnforcementEngine
    processor: CommandProcessor
    hub: DashboardHub
    _session_task: asyncio.Task[None] | None = field(default=None, init=False)

    @property
    def running(self) -> bool:
        return self._session_task is not None and not self._session_task.done()

    async def start(self) -> bool:
        """Start the session when cookies are configured."""
        if not self.config.has_credentials:
            logger.info("No cookies configured. Waiting for configuration from the dashboard.")
            return False
        if not self.settings.admin_id:
            logger.warning("No admin ID configured. Admin commands are disabled until one is set.")
        await self._restart_session()
        return True

    async def configure(self, submission: ConfigSubmission) -> None:
        """Persist an operator submission and restart the session with it."""
        try:
            self.config = self.credentials.save_settings(
                cookies=submission.cookies,
                prefix=submission.prefix,
                admin_id=submission.admin_id,
            )
        except OSError as e:
            raise ConfigError(f"Error: Could not save configuration: {e}") from e
        self.settings.prefix = submission.prefix
        self.settings.admin_id = submission.admin_id
        logger.info("Configuration saved. Starting bot...")
        await self._restart_session()

    async def _restart_session(self) -> None:
        await self._stop_session()
        self._session_task = asyncio.create_task(
            self.session_manager.run(list(self.config.cookies), self.settings.prefix, self.settings.admin_id)
        )
        self._session_task.add_done_callback(_report_session_exit)

    async def _stop_session(self) -> None:
        task, self._session_task = self._session_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.session_manager.shutdown()

    async def stop(self) -> None:
        await self._stop_session()
        logger.info("lockbot stopped")

    def status(self) -> dict[str, Any]:
        manager = self.session_manager
        return {
            "state": str(manager.state),
            "running": self.running,
            "userId": manager.session.user_id if manager.session else None,
            "reconnectAttempts": manager.reconnect.attempts,
            "prefix": self.settings.prefix,
            "botNickname": self.settings.bot_nickname,
            "groups": self.groups.snapshot(),
            "locks": {group_id: policy.describe() for group_id, policy in self.engine.store.snapshot().items()},
            "counters": self.telemetry.snapshot(),
        }

    def status_line(self) -> str:
        if self.running:
            return f"Bot is running ({self.session_manager.state})."
        return "Bot is not running. Submit cookies to start."


def _report_session_exit(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.opt(exception=error).error(f"Session loop stopped unexpectedly: {error}")


def build_runtime(
    config: Config,
    *,
    config_path: Path | None = None,
    hub: DashboardHub | None = None,
    transport: Transport | None = None,
    sleep: Sleep = asyncio.sleep,
) -> LockbotRuntime:
    """Compose the bot from its parts."""
    hub = hub or DashboardHub(backlog=config.dashboard.log_backlog)
    telemetry = InMemoryTelemetry()
    settings = BotSettings(prefix=config.prefix, admin_id=config.admin_id, bot_nickname=config.bot_nickname)
    groups = JoinedGroupSet(on_change=hub.publish_groups)
    dispatcher = EventDispatcher(telemetry)

    session_manager = SessionManager(
        transport=transport or BridgeTransport(config.bridge),
        settings=settings,
        credentials=CredentialStore(config_path),
        groups=groups,
        dispatcher=dispatcher,
        timings=config.timings,
        startup_notice=config.startup_notice,
        welcome_message=config.welcome_message,
        telemetry=telemetry,
        sleep=sleep,
    )
    engine = PolicyEnforcementEngine(
        store=PolicyStore(),
        actions=session_manager.actions,
        settings=settings,
        telemetry=telemetry,
        fanout_spacing_seconds=config.timings.fanout_spacing_seconds,
        sleep=sleep,
    )
    processor = CommandProcessor(
        engine=engine,
        actions=session_manager.actions,
        settings=settings,
        groups=groups,
        session_manager=session_manager,
        telemetry=telemetry,
    )

    dispatcher.register(EventKind.CHAT_MESSAGE, processor.handle_event)
    dispatcher.register(EventKind.THREAD_RENAMED, engine.handle_event)
    dispatcher.register(EventKind.MEMBER_RENAMED, engine.handle_event)
    dispatcher.register(EventKind.THREAD_PHOTO_CHANGED, engine.handle_event)
    dispatcher.register(EventKind.MEMBER_ADDED, session_manager.on_member_added)

    return LockbotRuntime(
        config=config,
        settings=settings,
        credentials=session_manager.credentials,
        groups=groups,
        telemetry=telemetry,
        dispatcher=dispatcher,
        session_manager=session_manager,
        engine=engine,
        processor=processor,
        hub=hub,
    )
