"""FastAPI dashboard for lockbot.

Endpoints:
- GET /           - Dashboard page
- POST /configure - Submit cookies, prefix and admin id, then (re)start the session
- GET /health     - Health check
- GET /status     - Session state, joined groups and active locks
- WS  /ws         - Live log lines and joined-group updates
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Form, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, PlainTextResponse
from loguru import logger

from lockbot import __version__
from lockbot.config.loader import validate_submission
from lockbot.errors import ConfigError

if TYPE_CHECKING:
    import uvicorn

    from lockbot.api.hub import DashboardHub
    from lockbot.app.bootstrap import LockbotRuntime

STATIC_DIR = Path(__file__).parent / "static"

CONFIGURED_MESSAGE = "Bot configured successfully! Starting..."


def create_app(runtime: LockbotRuntime, hub: DashboardHub) -> FastAPI:
    """Create the dashboard application bound to one runtime."""
    app = FastAPI(
        title="lockbot dashboard",
        description="Configuration and live logs for the group lock bot",
        version=__version__,
    )

    @app.get("/", include_in_schema=False)
    async def index() -> FileResponse:
        return FileResponse(STATIC_DIR / "index.html")

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status", tags=["status"])
    async def get_status() -> dict[str, Any]:
        return runtime.status()

    @app.post("/configure", tags=["config"], response_class=PlainTextResponse)
    async def configure(
        cookies: str = Form(default=""),
        prefix: str = Form(default=""),
        adminID: str = Form(default=""),  # noqa: N803 - form field name
    ) -> PlainTextResponse:
        try:
            submission = validate_submission(cookies, prefix, adminID)
            await runtime.configure(submission)
        except ConfigError as e:
            logger.warning(f"Rejected configuration: {e}")
            return PlainTextResponse(str(e), status_code=400)
        return PlainTextResponse(CONFIGURED_MESSAGE)

    @app.websocket("/ws")
    async def dashboard_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        queue = hub.subscribe(runtime.status_line())

        async def pump() -> None:
            while True:
                await websocket.send_json(await queue.get())

        sender = asyncio.create_task(pump())
        try:
            # Viewers never send; receiving only detects the disconnect.
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            hub.unsubscribe(queue)

    return app


def build_server(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    """Build a uvicorn server that shares the caller's event loop."""
    import uvicorn

    config = uvicorn.Config(app, host=host, port=port, log_level="warning", lifespan="off")
    return uvicorn.Server(config)


async def serve(app: FastAPI, host: str, port: int) -> None:
    server = build_server(app, host, port)
    logger.info(f"Dashboard listening on http://{host}:{port}")
    try:
        await server.serve()
    except asyncio.CancelledError:
        server.should_exit = True
        raise
