from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from lockbot.core.actions import ActionRunner
from lockbot.core.models import BotSettings
from lockbot.core.policy import PolicyEnforcementEngine, PolicyStore
from lockbot.core.telemetry import InMemoryTelemetry
from lockbot.errors import ListenerError, LoginError

ADMIN = "ADMIN"
BOT = "BOT"

DEFAULT_THREADS: dict[str, dict[str, Any]] = {
    "G1": {
        "threadID": "G1",
        "threadName": "Original",
        "participantIDs": [ADMIN, "U1", "U2"],
        "nicknames": {},
        "imageSrc": "https://img.example/g1.png",
    },
    "G2": {
        "threadID": "G2",
        "threadName": "Second",
        "participantIDs": [ADMIN, "U3"],
        "nicknames": {},
        "imageSrc": None,
    },
}

DEFAULT_USERS: dict[str, dict[str, Any]] = {
    ADMIN: {"name": "Admin"},
    "U1": {"name": "Alice"},
    "U2": {"name": "Bob"},
}


class FakeSession:
    """In-memory platform session that records every action."""

    def __init__(
        self,
        user_id: str = BOT,
        threads: dict[str, dict[str, Any]] | None = None,
        users: dict[str, dict[str, Any]] | None = None,
        app_state: list[Any] | None = None,
        hold: bool = False,
    ) -> None:
        self.user_id = user_id
        self.hold = hold
        self.threads = copy.deepcopy(DEFAULT_THREADS if threads is None else threads)
        self.users = copy.deepcopy(DEFAULT_USERS if users is None else users)
        self.app_state = app_state if app_state is not None else [{"key": "c_user", "value": user_id}]
        self.calls: list[tuple[Any, ...]] = []
        self.failing: set[str] = set()
        self.options: dict[str, Any] = {}
        self.events: list[Any] = []
        self.listen_error = "stream dropped"
        self.refuse_listen = False
        self.listen_starts = 0
        self.listen_stops = 0
        self.closed = False

    def _record(self, action: str, *args: Any) -> None:
        self.calls.append((action, *args))
        if action in self.failing:
            raise RuntimeError(f"{action} rejected")

    def actions(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def clear(self) -> None:
        self.calls.clear()

    def get_current_user_id(self) -> str:
        return self.user_id

    async def set_options(self, **options: Any) -> None:
        self._record("set_options", options)
        self.options.update(options)

    async def get_app_state(self) -> list[Any]:
        self._record("get_app_state")
        return list(self.app_state)

    async def start_listening(self):
        self.listen_starts += 1
        if self.refuse_listen:
            raise ListenerError("listener refused")
        events, self.events = list(self.events), []

        async def stream():
            for event in events:
                yield event
            if self.hold:
                await asyncio.Event().wait()
            raise ListenerError(self.listen_error)

        return stream()

    async def stop_listening(self) -> None:
        self.listen_stops += 1

    async def close(self) -> None:
        self.closed = True

    async def set_title(self, title: str, thread_id: str) -> None:
        self._record("set_title", title, thread_id)
        self.threads.setdefault(thread_id, {})["threadName"] = title

    async def change_nickname(self, nickname: str, thread_id: str, user_id: str) -> None:
        self._record("change_nickname", nickname, thread_id, user_id)
        thread = self.threads.setdefault(thread_id, {})
        thread.setdefault("nicknames", {})[user_id] = nickname

    async def change_thread_image(self, image: str, thread_id: str) -> None:
        self._record("change_thread_image", image, thread_id)

    async def send_message(self, message: dict[str, Any], thread_id: str) -> None:
        self._record("send_message", message, thread_id)

    async def get_thread_info(self, thread_id: str) -> dict[str, Any]:
        self._record("get_thread_info", thread_id)
        return copy.deepcopy(self.threads.get(thread_id, {"threadID": thread_id}))

    async def get_user_info(self, user_ids: list[str]) -> dict[str, dict[str, Any]]:
        self._record("get_user_info", list(user_ids))
        return {uid: self.users[uid] for uid in user_ids if uid in self.users}

    async def get_thread_list(self, limit: int, tags: list[str]) -> list[dict[str, Any]]:
        self._record("get_thread_list", limit, tags)
        return [{"threadID": tid} for tid in list(self.threads)[:limit]]


class FakeTransport:
    """Hands out a fresh FakeSession per login; the first ``failures`` logins fail."""

    def __init__(self, failures: int = 0, **session_kwargs: Any) -> None:
        self.failures = failures
        self.session_kwargs = session_kwargs
        self.login_calls: list[list[Any]] = []
        self.sessions: list[FakeSession] = []

    async def login(self, app_state: list[Any]) -> FakeSession:
        self.login_calls.append(list(app_state))
        if self.failures > 0:
            self.failures -= 1
            raise LoginError("credentials rejected")
        session = FakeSession(**self.session_kwargs)
        self.sessions.append(session)
        return session


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def settings() -> BotSettings:
    return BotSettings(prefix="/", admin_id=ADMIN, bot_nickname="HR BOT")


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def telemetry() -> InMemoryTelemetry:
    return InMemoryTelemetry()


@pytest.fixture
def actions(session: FakeSession, telemetry: InMemoryTelemetry) -> ActionRunner:
    return ActionRunner(lambda: session, telemetry=telemetry)


@pytest.fixture
def store() -> PolicyStore:
    return PolicyStore()


@pytest.fixture
def engine(
    store: PolicyStore,
    actions: ActionRunner,
    settings: BotSettings,
    telemetry: InMemoryTelemetry,
) -> PolicyEnforcementEngine:
    return PolicyEnforcementEngine(store=store, actions=actions, settings=settings, telemetry=telemetry)
