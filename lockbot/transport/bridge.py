"""Messaging transport backed by a websocket bridge to the platform client."""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from loguru import logger

from lockbot.config.schema import BridgeConfig
from lockbot.errors import ListenerError, LoginError

PROTOCOL_VERSION = 1


class BridgeProtocolError(RuntimeError):
    """Bridge returned a protocol-level error."""

    def __init__(self, code: str, message: str, retryable: bool):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.retryable = retryable


@dataclass(frozen=True, slots=True)
class _StreamFailure:
    reason: str


class BridgeTransport:
    """Opens bridge sessions; one websocket connection per login."""

    def __init__(self, config: BridgeConfig) -> None:
        self.config = config

    async def login(self, app_state: list[Any]) -> BridgeSession:
        import websockets
        from websockets.exceptions import WebSocketException

        logger.info(f"Connecting to messaging bridge at {self.config.url}...")
        try:
            ws = await websockets.connect(
                self.config.url,
                max_size=self.config.max_payload_bytes,
                ping_interval=20,
                ping_timeout=20,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            raise LoginError(f"bridge unreachable: {e}") from e

        session = BridgeSession(ws, self.config)
        try:
            result = await session.request(
                "login",
                {"appState": app_state},
                timeout_seconds=self.config.login_timeout_seconds,
            )
        except (BridgeProtocolError, RuntimeError, TimeoutError) as e:
            await session.close()
            raise LoginError(str(e) or "login timed out") from e

        session.user_id = str(result.get("userID") or result.get("userId") or "")
        return session


class BridgeSession:
    """One authenticated bridge session: request/response plus the event stream."""

    def __init__(self, ws: Any, config: BridgeConfig) -> None:
        self._ws = ws
        self.config = config
        self.user_id = ""
        self._send_lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._events: asyncio.Queue[dict[str, Any] | _StreamFailure] | None = None
        self._reader_task: asyncio.Task[None] | None = asyncio.create_task(self._read_loop())

    def get_current_user_id(self) -> str:
        return self.user_id

    async def request(
        self,
        command_type: str,
        payload: dict[str, Any],
        timeout_seconds: float | None = None,
    ) -> dict[str, Any]:
        if self._reader_task is None or self._reader_task.done():
            raise RuntimeError("Bridge websocket not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        envelope = {
            "version": PROTOCOL_VERSION,
            "type": command_type,
            "token": self.config.token,
            "requestId": request_id,
            "payload": payload,
        }

        try:
            async with self._send_lock:
                await self._ws.send(json.dumps(envelope))
            return await asyncio.wait_for(
                future, timeout=timeout_seconds or self.config.request_timeout_seconds
            )
        finally:
            self._pending.pop(request_id, None)

    async def _read_loop(self) -> None:
        from websockets.exceptions import ConnectionClosed

        reason = "Bridge connection closed"
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            reason = f"Bridge connection closed: {e}"
        finally:
            self._fail_pending(reason)
            self._signal_stream(_StreamFailure(reason))

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from bridge")
            return

        if not isinstance(data, dict):
            logger.warning("Invalid bridge frame shape")
            return

        version = data.get("version")
        if version != PROTOCOL_VERSION:
            logger.warning(f"Unexpected bridge protocol version: {version!r}")
            return

        msg_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if msg_type == "response":
            request_id = data.get("requestId")
            if isinstance(request_id, str):
                self._resolve_pending(request_id, payload)
            return

        if msg_type == "event":
            self._signal_stream(payload)
            return

        if msg_type == "listen_error":
            self._signal_stream(_StreamFailure(str(payload.get("error") or "listener failed")))
            return

        if msg_type == "error":
            logger.error(f"Messaging bridge error: {payload.get('error')}")

    def _signal_stream(self, item: dict[str, Any] | _StreamFailure) -> None:
        if self._events is not None:
            self._events.put_nowait(item)

    def _resolve_pending(self, request_id: str, payload: dict[str, Any]) -> None:
        future = self._pending.get(request_id)
        if not future or future.done():
            return

        ok = bool(payload.get("ok"))
        if ok:
            result = payload.get("result")
            future.set_result(result if isinstance(result, dict) else {"value": result})
            return

        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        code = str(error.get("code") or "ERR_INTERNAL")
        message = str(error.get("message") or "Bridge command failed")
        retryable = bool(error.get("retryable", False))
        future.set_exception(BridgeProtocolError(code, message, retryable))

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(RuntimeError(reason))
        self._pending.clear()

    async def set_options(self, **options: Any) -> None:
        await self.request("set_options", options)

    async def get_app_state(self) -> list[Any]:
        result = await self.request("get_app_state", {})
        app_state = result.get("appState")
        if not isinstance(app_state, list):
            raise BridgeProtocolError("ERR_BAD_RESULT", "appState missing from bridge result", False)
        return app_state

    async def start_listening(self) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any] | _StreamFailure] = asyncio.Queue()
        self._events = queue
        try:
            await self.request("listen", {})
        except (BridgeProtocolError, RuntimeError, TimeoutError) as e:
            self._events = None
            raise ListenerError(f"listener refused to start: {e}") from e
        return self._iterate_events(queue)

    async def _iterate_events(
        self, queue: asyncio.Queue[dict[str, Any] | _StreamFailure]
    ) -> AsyncIterator[dict[str, Any]]:
        while True:
            item = await queue.get()
            if isinstance(item, _StreamFailure):
                raise ListenerError(item.reason)
            yield item

    async def stop_listening(self) -> None:
        self._events = None
        await self.request("stop_listening", {})

    async def close(self) -> None:
        self._events = None
        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None
        with contextlib.suppress(Exception):
            await self._ws.close()
        self._fail_pending("Session closed")

    async def set_title(self, title: str, thread_id: str) -> None:
        await self.request("set_title", {"title": title, "threadID": thread_id})

    async def change_nickname(self, nickname: str, thread_id: str, user_id: str) -> None:
        await self.request(
            "change_nickname",
            {"nickname": nickname, "threadID": thread_id, "userID": user_id},
        )

    async def change_thread_image(self, image: str, thread_id: str) -> None:
        await self.request("change_thread_image", {"image": image, "threadID": thread_id})

    async def send_message(self, message: dict[str, Any], thread_id: str) -> None:
        await self.request("send_message", {"message": message, "threadID": thread_id})

    async def get_thread_info(self, thread_id: str) -> dict[str, Any]:
        return await self.request("get_thread_info", {"threadID": thread_id})

    async def get_user_info(self, user_ids: list[str]) -> dict[str, dict[str, Any]]:
        result = await self.request("get_user_info", {"userIDs": user_ids})
        return {str(k): v for k, v in result.items() if isinstance(v, dict)}

    async def get_thread_list(self, limit: int, tags: list[str]) -> list[dict[str, Any]]:
        result = await self.request("get_thread_list", {"limit": limit, "tags": tags})
        threads = result.get("threads", result.get("value"))
        return [t for t in threads if isinstance(t, dict)] if isinstance(threads, list) else []
