from typing import Any

import pytest
from fastapi.testclient import TestClient

from lockbot.api.hub import DashboardHub
from lockbot.api.server import CONFIGURED_MESSAGE, create_app
from lockbot.config.loader import ConfigSubmission


class StubRuntime:
    def __init__(self) -> None:
        self.submissions: list[ConfigSubmission] = []

    async def configure(self, submission: ConfigSubmission) -> None:
        self.submissions.append(submission)

    def status(self) -> dict[str, Any]:
        return {"state": "connected", "groups": ["G1"]}

    def status_line(self) -> str:
        return "Bot is running (connected)."


@pytest.fixture
def runtime() -> StubRuntime:
    return StubRuntime()


@pytest.fixture
def hub() -> DashboardHub:
    return DashboardHub(backlog=10)


@pytest.fixture
def client(runtime: StubRuntime, hub: DashboardHub) -> TestClient:
    return TestClient(create_app(runtime, hub))


def test_health_and_status(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/status").json() == {"state": "connected", "groups": ["G1"]}


def test_dashboard_page_is_served(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "/configure" in response.text


def test_configure_accepts_valid_form(client: TestClient, runtime: StubRuntime) -> None:
    response = client.post(
        "/configure",
        data={"cookies": '[{"key": "c_user", "value": "1"}]', "prefix": "!", "adminID": "1"},
    )

    assert response.status_code == 200
    assert response.text == CONFIGURED_MESSAGE
    [submission] = runtime.submissions
    assert submission.prefix == "!"
    assert submission.admin_id == "1"


@pytest.mark.parametrize(
    ("form", "message"),
    [
        ({"cookies": "nope", "adminID": "1"}, "Error: Invalid configuration. Please check your input."),
        ({"cookies": "[]", "adminID": "1"}, "Error: Invalid cookies format. Please provide a valid JSON array of cookies."),
        ({"cookies": '[{"key": "a"}]'}, "Error: Admin ID is required."),
    ],
)
def test_configure_rejects_invalid_form(
    client: TestClient, runtime: StubRuntime, form: dict[str, str], message: str
) -> None:
    response = client.post("/configure", data=form)

    assert response.status_code == 400
    assert response.text == message
    assert runtime.submissions == []


def test_websocket_receives_status_backlog_and_groups(client: TestClient, hub: DashboardHub) -> None:
    hub.publish_log("[2026-01-01T00:00:00] INFO: earlier")
    hub.publish_groups(["G1", "G2"])

    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"event": "botlog", "data": "Bot is running (connected)."}
        assert ws.receive_json() == {"event": "botlog", "data": "[2026-01-01T00:00:00] INFO: earlier"}
        assert ws.receive_json() == {"event": "groupsUpdate", "data": ["G1", "G2"]}


def test_hub_keeps_bounded_backlog_and_drops_oldest_for_slow_viewers() -> None:
    hub = DashboardHub(backlog=2, viewer_maxsize=2)
    queue = hub.subscribe()
    for line in ("a", "b", "c"):
        hub.publish_log(line)

    assert hub.backlog == ["b", "c"]
    assert queue.get_nowait() == {"event": "botlog", "data": "b"}
    assert queue.get_nowait() == {"event": "botlog", "data": "c"}

    hub.unsubscribe(queue)
    hub.publish_log("d")
    assert queue.empty()


def test_hub_sink_formats_loguru_records() -> None:
    from loguru import logger

    hub = DashboardHub()
    handler_id = logger.add(hub.sink, level="INFO")
    try:
        logger.info("lock applied")
    finally:
        logger.remove(handler_id)

    [line] = hub.backlog
    assert line.startswith("[")
    assert line.endswith("] INFO: lock applied")
