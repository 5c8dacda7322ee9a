import pytest

from lockbot.core.dispatcher import EventDispatcher, classify
from lockbot.core.models import EventKind, PlatformEvent
from lockbot.core.telemetry import InMemoryTelemetry
from lockbot.errors import ListenerError


def test_classify_chat_message_and_reply() -> None:
    event = classify(
        {
            "type": "message_reply",
            "threadID": "G1",
            "senderID": "U1",
            "body": "/tid",
            "mentions": {"U2": "@Bob"},
        }
    )
    assert event.kind == EventKind.CHAT_MESSAGE
    assert (event.group_id, event.author_id, event.body) == ("G1", "U1", "/tid")
    assert event.mentions == {"U2": "@Bob"}


def test_classify_log_events() -> None:
    title = classify(
        {"type": "event", "logMessageType": "log:thread-name", "threadID": "G1", "author": "U1",
         "logMessageData": {"name": "Hacked"}}
    )
    assert (title.kind, title.title, title.author_id) == (EventKind.THREAD_RENAMED, "Hacked", "U1")

    nick = classify(
        {"type": "event", "logMessageType": "log:user-nickname", "threadID": "G1",
         "logMessageData": {"participant_id": "U2", "nickname": "Drift"}}
    )
    assert (nick.kind, nick.member_id, nick.nickname) == (EventKind.MEMBER_RENAMED, "U2", "Drift")

    photo = classify(
        {"type": "event", "logMessageType": "log:thread-image", "threadID": "G1",
         "logMessageData": {"url": "https://img.example/new.png"}}
    )
    assert (photo.kind, photo.photo_ref) == (EventKind.THREAD_PHOTO_CHANGED, "https://img.example/new.png")

    added = classify(
        {"type": "event", "logMessageType": "log:subscribe", "threadID": "G9",
         "logMessageData": {"addedParticipants": [{"userFbId": "BOT"}, {"fullName": "no id"}]}}
    )
    assert (added.kind, added.added_ids) == (EventKind.MEMBER_ADDED, ("BOT",))


def test_classify_change_thread_image_event() -> None:
    event = classify({"type": "change_thread_image", "threadID": "G1", "author": "U1", "image": {"url": "u"}})
    assert (event.kind, event.photo_ref) == (EventKind.THREAD_PHOTO_CHANGED, "u")


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "text",
        {"type": "typ", "threadID": "G1"},
        {"type": "event", "logMessageType": "log:unsubscribe", "threadID": "G1"},
    ],
)
def test_classify_unrecognized(raw: object) -> None:
    assert classify(raw).kind == EventKind.UNRECOGNIZED


def test_register_rejects_unrecognized_kind() -> None:
    with pytest.raises(ValueError):
        EventDispatcher().register(EventKind.UNRECOGNIZED, _noop)


async def _noop(event: PlatformEvent) -> None:
    return None


async def test_handler_failure_does_not_stop_the_stream() -> None:
    telemetry = InMemoryTelemetry()
    dispatcher = EventDispatcher(telemetry)
    seen: list[str] = []

    async def on_message(event: PlatformEvent) -> None:
        if event.body == "boom":
            raise RuntimeError("handler bug")
        seen.append(event.body)

    dispatcher.register(EventKind.CHAT_MESSAGE, on_message)

    async def stream():
        for body in ("first", "boom", "second"):
            yield {"type": "message", "threadID": "G1", "senderID": "U1", "body": body}

    await dispatcher.consume(stream())

    assert seen == ["first", "second"]
    assert telemetry.get("handler_failed") == 1
    assert telemetry.get("handler_failed", labels=(("kind", "chat_message"),)) == 1


async def test_events_are_dispatched_in_arrival_order_to_their_handler() -> None:
    dispatcher = EventDispatcher()
    order: list[tuple[str, str]] = []

    async def record(event: PlatformEvent) -> None:
        order.append((event.kind.value, event.group_id))

    dispatcher.register(EventKind.CHAT_MESSAGE, record)
    dispatcher.register(EventKind.THREAD_RENAMED, record)

    assert await dispatcher.dispatch({"type": "message", "threadID": "G1", "body": "x"}) is True
    assert await dispatcher.dispatch(
        {"type": "event", "logMessageType": "log:thread-name", "threadID": "G2", "logMessageData": {"name": "n"}}
    ) is True
    assert await dispatcher.dispatch({"type": "presence"}) is False

    assert order == [("chat_message", "G1"), ("thread_renamed", "G2")]


async def test_stream_failure_propagates() -> None:
    dispatcher = EventDispatcher()
    dispatcher.register(EventKind.CHAT_MESSAGE, _noop)

    async def stream():
        yield {"type": "message", "threadID": "G1", "body": "x"}
        raise ListenerError("connection lost")

    with pytest.raises(ListenerError):
        await dispatcher.consume(stream())
