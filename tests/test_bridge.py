import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from lockbot.config.schema import BridgeConfig
from lockbot.errors import ListenerError, LoginError
from lockbot.transport.bridge import PROTOCOL_VERSION, BridgeProtocolError, BridgeSession, BridgeTransport

type Responder = Callable[[dict[str, Any]], list[dict[str, Any]]]


def ok(frame: dict[str, Any], result: Any = None) -> dict[str, Any]:
    return {
        "version": PROTOCOL_VERSION,
        "type": "response",
        "requestId": frame["requestId"],
        "payload": {"ok": True, "result": result if result is not None else {}},
    }


class FakeWebSocket:
    """Bridge stand-in: every sent frame is answered by ``responder``."""

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        for reply in self.responder(frame):
            self.push(reply)

    def push(self, frame: dict[str, Any]) -> None:
        self.incoming.put_nowait(json.dumps(frame))

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.incoming.put_nowait(None)


def default_responder(frame: dict[str, Any]) -> list[dict[str, Any]]:
    if frame["type"] == "get_thread_info":
        return [ok(frame, {"threadID": frame["payload"]["threadID"], "threadName": "Club"})]
    if frame["type"] == "set_title":
        return [
            {
                "version": PROTOCOL_VERSION,
                "type": "response",
                "requestId": frame["requestId"],
                "payload": {"ok": False, "error": {"code": "ERR_PERMISSION", "message": "not allowed"}},
            }
        ]
    return [ok(frame)]


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(token="secret", request_timeout_seconds=1)


async def test_request_envelope_and_result(config: BridgeConfig) -> None:
    ws = FakeWebSocket(default_responder)
    session = BridgeSession(ws, config)

    info = await session.get_thread_info("G1")

    assert info == {"threadID": "G1", "threadName": "Club"}
    [frame] = ws.sent
    assert frame["version"] == PROTOCOL_VERSION
    assert frame["type"] == "get_thread_info"
    assert frame["token"] == "secret"
    assert frame["payload"] == {"threadID": "G1"}
    await session.close()


async def test_error_response_raises_protocol_error(config: BridgeConfig) -> None:
    session = BridgeSession(FakeWebSocket(default_responder), config)

    with pytest.raises(BridgeProtocolError, match="ERR_PERMISSION"):
        await session.set_title("Locked", "G1")
    await session.close()


async def test_event_stream_yields_events_until_listen_error(config: BridgeConfig) -> None:
    ws = FakeWebSocket(default_responder)
    session = BridgeSession(ws, config)
    stream = await session.start_listening()

    ws.push({"version": PROTOCOL_VERSION, "type": "event", "payload": {"type": "message", "body": "hi"}})
    ws.push({"version": PROTOCOL_VERSION, "type": "listen_error", "payload": {"error": "mqtt dropped"}})

    assert await anext(stream) == {"type": "message", "body": "hi"}
    with pytest.raises(ListenerError, match="mqtt dropped"):
        await anext(stream)
    await session.close()


async def test_frames_with_wrong_version_are_ignored(config: BridgeConfig) -> None:
    ws = FakeWebSocket(default_responder)
    session = BridgeSession(ws, config)
    stream = await session.start_listening()

    ws.push({"version": 99, "type": "event", "payload": {"body": "ignored"}})
    ws.push({"version": PROTOCOL_VERSION, "type": "event", "payload": {"body": "kept"}})

    assert await anext(stream) == {"body": "kept"}
    await session.close()


async def test_closed_connection_ends_stream_with_listener_error(config: BridgeConfig) -> None:
    ws = FakeWebSocket(default_responder)
    session = BridgeSession(ws, config)
    stream = await session.start_listening()

    await ws.close()

    with pytest.raises(ListenerError, match="closed"):
        await anext(stream)
    with pytest.raises(RuntimeError):
        await session.get_thread_info("G1")


async def test_refused_listen_raises_listener_error(config: BridgeConfig) -> None:
    def refuse(frame: dict[str, Any]) -> list[dict[str, Any]]:
        if frame["type"] == "listen":
            return [
                {
                    "version": PROTOCOL_VERSION,
                    "type": "response",
                    "requestId": frame["requestId"],
                    "payload": {"ok": False, "error": {"code": "ERR_NOT_LOGGED_IN", "message": "login first"}},
                }
            ]
        return [ok(frame)]

    session = BridgeSession(FakeWebSocket(refuse), config)

    with pytest.raises(ListenerError, match="login first"):
        await session.start_listening()
    await session.close()


async def test_unreachable_bridge_is_a_login_error() -> None:
    transport = BridgeTransport(BridgeConfig(url="ws://127.0.0.1:9", login_timeout_seconds=1))

    with pytest.raises(LoginError):
        await transport.login([{"key": "c_user", "value": "1"}])
