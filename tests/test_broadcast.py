from datetime import datetime, timezone

from roomchat.schemas.events import SendMessage

from .conftest import BrokenSocket, FakeSocket, UnavailableStore, build_core, connect, frame


class HistoryCheckingSocket(FakeSocket):
    """Looks the message up in history the moment it is delivered."""

    def __init__(self, store, room_id):
        super().__init__()
        self.store = store
        self.room_id = room_id
        self.found_in_history = []

    async def send_json(self, payload):
        await super().send_json(payload)
        if payload["event"] == "receive_message":
            history = await self.store.find_by_room(self.room_id)
            self.found_in_history.append(payload["data"]["id"] in {m.id for m in history})


async def test_message_reaches_every_member_including_sender(core):
    c1, c2 = connect(core.registry), connect(core.registry)
    await core.dispatcher.dispatch(c1, frame("join_room", roomId="r1"))
    await core.dispatcher.dispatch(c2, frame("join_room", roomId="r1"))

    await core.dispatcher.dispatch(c1, frame("send_message", roomId="r1", sender="u1", message="hi"))

    for connection in (c1, c2):
        [received] = connection.websocket.events("receive_message")
        assert received["data"]["sender"] == "u1"
        assert received["data"]["message"] == "hi"
        assert received["data"]["timestamp"]
    history = await core.engine.handle_history_query("r1")
    assert [m.message for m in history] == ["hi"]


async def test_message_does_not_leak_to_other_rooms(core):
    c1, c3 = connect(core.registry), connect(core.registry)
    core.registry.join(c1, "r1")
    core.registry.join(c3, "r2")

    await core.dispatcher.dispatch(c1, frame("send_message", roomId="r1", sender="u1", message="hi"))

    assert len(c1.websocket.events("receive_message")) == 1
    assert c3.websocket.sent == []


async def test_membership_in_another_room_does_not_help(core):
    both, only_b = connect(core.registry), connect(core.registry)
    core.registry.join(both, "A")
    core.registry.join(both, "B")
    core.registry.join(only_b, "B")

    await core.dispatcher.dispatch(both, frame("send_message", roomId="A", sender="u1", message="for A"))

    assert len(both.websocket.events("receive_message")) == 1
    assert only_b.websocket.sent == []


async def test_missing_message_field_is_rejected(core):
    c1, c2 = connect(core.registry), connect(core.registry)
    core.registry.join(c1, "r1")
    core.registry.join(c2, "r1")

    await core.dispatcher.dispatch(c1, frame("send_message", roomId="r1", sender="u1"))

    assert c1.websocket.sent == [{"event": "error", "data": {"message": "Failed to send message"}}]
    assert c2.websocket.sent == []
    assert await core.engine.handle_history_query("r1") == []


async def test_null_fields_are_rejected(core):
    c1 = connect(core.registry)
    core.registry.join(c1, "r1")

    await core.dispatcher.dispatch(c1, frame("send_message", roomId="r1", sender=None, message="hi"))
    await core.dispatcher.dispatch(c1, frame("send_message", sender="u1", message="hi"))

    assert [p["event"] for p in c1.websocket.sent] == ["error", "error"]
    assert await core.engine.handle_history_query("r1") == []


async def test_explicit_timestamp_is_kept(core):
    c1 = connect(core.registry)
    core.registry.join(c1, "r1")

    await core.dispatcher.dispatch(
        c1,
        frame("send_message", roomId="r1", sender="u1", message="old", timestamp="2025-01-01T12:00:00Z"),
    )

    [received] = c1.websocket.events("receive_message")
    assert received["data"]["timestamp"] == "2025-01-01T12:00:00+00:00"


async def test_message_is_persisted_before_it_is_broadcast(core):
    watcher = connect(core.registry, socket=HistoryCheckingSocket(core.store, "r1"))
    core.registry.join(watcher, "r1")

    for text in ("one", "two", "three"):
        await core.dispatcher.dispatch(watcher, frame("send_message", roomId="r1", sender="u1", message=text))

    assert watcher.websocket.found_in_history == [True, True, True]


async def test_sender_outside_the_room_still_delivers(core):
    outsider, member = connect(core.registry), connect(core.registry)
    core.registry.join(member, "r1")

    await core.dispatcher.dispatch(outsider, frame("send_message", roomId="r1", sender="u1", message="hi"))

    assert outsider.websocket.sent == []
    assert len(member.websocket.events("receive_message")) == 1


async def test_broken_member_does_not_block_the_rest(core):
    broken = connect(core.registry, socket=BrokenSocket())
    healthy = connect(core.registry)
    core.registry.join(broken, "r1")
    core.registry.join(healthy, "r1")

    await core.dispatcher.dispatch(healthy, frame("send_message", roomId="r1", sender="u1", message="hi"))

    assert len(healthy.websocket.events("receive_message")) == 1


async def test_store_failure_reports_error_without_broadcast():
    core = build_core(UnavailableStore())
    c1, c2 = connect(core.registry), connect(core.registry)
    core.registry.join(c1, "r1")
    core.registry.join(c2, "r1")

    await core.engine.handle_send(c1, SendMessage(roomId="r1", sender="u1", message="hi"))

    assert c1.websocket.sent == [{"event": "error", "data": {"message": "Failed to send message"}}]
    assert c2.websocket.sent == []


async def test_history_is_non_decreasing_in_timestamp(core):
    c1 = connect(core.registry)
    for ts in ("2026-01-01T10:10:00Z", "2026-01-01T10:00:00Z", "2026-01-01T10:05:00Z"):
        await core.dispatcher.dispatch(
            c1, frame("send_message", roomId="r1", sender="u1", message=ts, timestamp=ts)
        )
    await core.dispatcher.dispatch(c1, frame("send_message", roomId="r1", sender="u1", message="now"))

    history = await core.engine.handle_history_query("r1")

    timestamps = [m.timestamp for m in history]
    assert timestamps == sorted(timestamps)
    assert history[-1].message == "now"
    assert history[0].timestamp.replace(tzinfo=timezone.utc) == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
