"""Realtime hub: session lifecycle, join, routing, notifications, dashboard group."""
import asyncio
import json

import pytest


def frame(event, data=None):
    return json.dumps({"event": event, "data": data})


def run(coro):
    return asyncio.run(coro)


def test_session_state_machine(make_transport):
    from bizlink.core.websocket import RealtimeHub, SessionState

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        session = await hub.connect(transport)
        assert transport.accepted is True
        assert session.state is SessionState.OPEN
        assert hub.connection_count == 1
        hub.disconnect(session)
        assert session.state is SessionState.CLOSED
        assert hub.connection_count == 0
        with pytest.raises(RuntimeError):
            await session.open()
        assert await session.send("receive_message", {}) is False
        assert transport.sent == []

    run(scenario())


def test_join_acknowledges_and_registers(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        session = await hub.connect(transport)
        await hub.handle_frame(session, frame("join", "alice"))
        assert hub.registry.lookup("alice") is session
        assert session.user_id == "alice"
        assert transport.events("joined") == [{"userId": "alice"}]

    run(scenario())


def test_join_accepts_object_payload(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        session = await hub.connect(make_transport())
        await hub.handle_frame(session, frame("join", {"userId": "bob"}))
        assert hub.registry.lookup("bob") is session

    run(scenario())


def test_join_with_different_identity_is_ignored(make_transport):
    from bizlink.core.websocket import RealtimeHub
    from bizlink.core.observability.metrics import get_metrics

    async def scenario():
        hub = RealtimeHub()
        session = await hub.connect(make_transport())
        await hub.handle_frame(session, frame("join", "alice"))
        await hub.handle_frame(session, frame("join", "mallory"))
        assert hub.registry.lookup("mallory") is None
        assert hub.registry.lookup("alice") is session
        assert get_metrics().get("malformed_events") == 1

    run(scenario())


def test_same_user_two_sessions_disconnect_old_keeps_new(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        conn1 = await hub.connect(make_transport())
        conn2 = await hub.connect(make_transport())
        await hub.handle_frame(conn1, frame("join", "alice"))
        await hub.handle_frame(conn2, frame("join", "alice"))
        assert hub.registry.lookup("alice") is conn2
        assert hub.disconnect(conn1) == []
        assert hub.registry.lookup("alice") is conn2
        assert hub.disconnect(conn2) == ["alice"]
        assert hub.registry.lookup("alice") is None

    run(scenario())


def test_message_delivered_to_recipient_and_echoed_to_sender(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        t_alice, t_bob = make_transport(), make_transport()
        alice = await hub.connect(t_alice)
        bob = await hub.connect(t_bob)
        await hub.handle_frame(alice, frame("join", "alice"))
        await hub.handle_frame(bob, frame("join", "bob"))
        await hub.handle_frame(
            alice,
            frame("send_message", {"senderId": "alice", "recipientId": "bob", "content": "Hi Bob"}),
        )
        received = t_bob.events("receive_message")
        echoed = t_alice.events("receive_message")
        assert len(received) == 1
        assert len(echoed) == 1
        assert received[0] == echoed[0]
        payload = received[0]
        assert payload["senderId"] == "alice"
        assert payload["recipientId"] == "bob"
        assert payload["content"] == "Hi Bob"
        assert payload["createdAt"]
        assert payload["id"]

    run(scenario())


def test_offline_recipient_still_echoes_once(make_transport):
    from bizlink.core.websocket import RealtimeHub
    from bizlink.core.observability.metrics import get_metrics

    async def scenario():
        hub = RealtimeHub()
        t_alice = make_transport()
        alice = await hub.connect(t_alice)
        await hub.handle_frame(alice, frame("join", "alice"))
        await hub.handle_frame(
            alice,
            frame("send_message", {"senderId": "alice", "recipientId": "ghost", "content": "anyone?"}),
        )
        echoed = t_alice.events("receive_message")
        assert len(echoed) == 1
        assert echoed[0]["recipientId"] == "ghost"
        assert get_metrics().get("recipient_misses") == 1

    run(scenario())


def test_message_to_self_arrives_as_copy_and_echo(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        alice = await hub.connect(transport)
        await hub.handle_frame(alice, frame("join", "alice"))
        await hub.handle_frame(
            alice,
            frame("send_message", {"senderId": "alice", "recipientId": "alice", "content": "note"}),
        )
        copies = transport.events("receive_message")
        assert len(copies) == 2
        assert copies[0]["id"] == copies[1]["id"]

    run(scenario())


def test_spoofed_sender_is_dropped(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        t_alice, t_bob = make_transport(), make_transport()
        alice = await hub.connect(t_alice)
        bob = await hub.connect(t_bob)
        await hub.handle_frame(alice, frame("join", "alice"))
        await hub.handle_frame(bob, frame("join", "bob"))
        await hub.handle_frame(
            alice,
            frame("send_message", {"senderId": "carol", "recipientId": "bob", "content": "hi"}),
        )
        assert t_bob.events("receive_message") == []
        assert t_alice.events("receive_message") == []

    run(scenario())


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        json.dumps({"data": "no event"}),
        frame("teleport", {}),
        frame("send_message", {"senderId": "alice"}),
        frame("send_message", {"senderId": "alice", "recipientId": "bob", "content": ""}),
        frame("join", None),
        frame("join", True),
        "x" * 70000,
        json.dumps(
            {"event": "send_message", "data": {"senderId": "alice", "recipientId": "bob", "content": "\u00e9" * 40000}},
            ensure_ascii=False,
        ),
        b'{"event": "join", "data": "alice"}',
        None,
    ],
)
def test_malformed_frames_are_ignored(make_transport, raw):
    from bizlink.core.websocket import RealtimeHub
    from bizlink.core.observability.metrics import get_metrics

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        session = await hub.connect(transport)
        await hub.handle_frame(session, frame("join", "alice"))
        transport.sent.clear()
        deliveries = await hub.handle_frame(session, raw)
        assert deliveries == []
        assert transport.sent == []
        assert session.is_open
        assert hub.registry.lookup("alice") is session
        assert get_metrics().get("malformed_events") == 1

    run(scenario())


def test_failed_send_does_not_raise(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        alice = await hub.connect(make_transport())
        bob = await hub.connect(make_transport(fail_sends=True))
        await hub.handle_frame(alice, frame("join", "alice"))
        await hub.handle_frame(bob, frame("join", "bob"))
        deliveries = await hub.handle_frame(
            alice,
            frame("send_message", {"senderId": "alice", "recipientId": "bob", "content": "hi"}),
        )
        assert len(deliveries) == 2
        assert len(alice.transport.events("receive_message")) == 1

    run(scenario())


def test_notification_reaches_online_user_only(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        t_admin, t_bob = make_transport(), make_transport()
        admin = await hub.connect(t_admin)
        bob = await hub.connect(t_bob)
        await hub.handle_frame(bob, frame("join", "bob"))
        await hub.handle_frame(
            admin,
            frame("send_notification", {"userId": "bob", "notification": {"type": "investment", "title": "New offer"}}),
        )
        await hub.handle_frame(
            admin,
            frame("send_notification", {"userId": "offline-user", "notification": {"title": "lost"}}),
        )
        notifications = t_bob.events("receive_notification")
        assert len(notifications) == 1
        assert notifications[0]["title"] == "New offer"
        assert notifications[0]["createdAt"]
        assert t_admin.events("receive_notification") == []

    run(scenario())


def test_dashboard_group_broadcast(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        t1, t2, t3 = make_transport(), make_transport(), make_transport()
        s1 = await hub.connect(t1)
        s2 = await hub.connect(t2)
        await hub.connect(t3)
        await hub.handle_frame(s1, frame("join_dashboard"))
        await hub.handle_frame(s2, frame("join_dashboard"))
        assert t1.events("joined_dashboard") == [{"group": "dashboard"}]
        sent = await hub.broadcast("dashboard", "dashboard-update", {"users": 3})
        assert sent == 2
        assert t1.events("dashboard-update") == [{"users": 3}]
        assert t2.events("dashboard-update") == [{"users": 3}]
        assert t3.events("dashboard-update") == []

        await hub.handle_frame(s2, frame("leave_dashboard"))
        hub.disconnect(s1)
        assert await hub.broadcast("dashboard", "dashboard-update", {"users": 4}) == 0
        assert t2.events("dashboard-update") == [{"users": 3}]

    run(scenario())


def test_broadcast_to_empty_group_is_noop():
    from bizlink.core.websocket import RealtimeHub
    from bizlink.core.observability.metrics import get_metrics

    async def scenario():
        hub = RealtimeHub()
        assert await hub.broadcast("dashboard", "dashboard-update", {"x": 1}) == 0
        assert get_metrics().get("broadcasts") == 0

    run(scenario())


def test_isolated_hubs_do_not_share_presence(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub_a, hub_b = RealtimeHub(), RealtimeHub()
        session = await hub_a.connect(make_transport())
        await hub_a.handle_frame(session, frame("join", "alice"))
        assert hub_b.registry.lookup("alice") is None

    run(scenario())


def test_heartbeat_closes_idle_session(make_transport):
    from bizlink.core.websocket import RealtimeHub
    from bizlink.core.websocket.handler import run_heartbeat_task

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        session = await hub.connect(transport)
        session.last_seen -= 10
        await asyncio.wait_for(run_heartbeat_task(session, interval=0.01, timeout=1.0), timeout=2)
        assert transport.closed == (4001, "heartbeat_timeout")
        assert not session.is_open

    run(scenario())


def test_heartbeat_sent_to_active_session(make_transport):
    from bizlink.core.websocket import RealtimeHub
    from bizlink.core.websocket.handler import run_heartbeat_task

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        session = await hub.connect(transport)
        task = asyncio.create_task(run_heartbeat_task(session, interval=0.01, timeout=60))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert transport.events("heartbeat")

    run(scenario())


def test_close_all_clears_presence(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        transport = make_transport()
        session = await hub.connect(transport)
        await hub.handle_frame(session, frame("join", "alice"))
        await hub.close_all()
        assert hub.registry.lookup("alice") is None
        assert hub.connection_count == 0
        assert transport.closed == (1001, "server_shutdown")

    run(scenario())


def test_boolean_join_payload_is_rejected(make_transport):
    from bizlink.core.websocket import RealtimeHub

    async def scenario():
        hub = RealtimeHub()
        session = await hub.connect(make_transport())
        await hub.handle_frame(session, frame("join", True))
        assert session.user_id is None
        assert len(hub.registry) == 0

    run(scenario())


def test_frame_limit_counts_encoded_bytes():
    from bizlink.core.websocket.events import MalformedEvent
    from bizlink.core.websocket.handler import parse_frame

    raw = json.dumps({"event": "join", "data": "é" * 10}, ensure_ascii=False)
    assert parse_frame(raw, max_frame_size=len(raw.encode("utf-8"))).event == "join"
    with pytest.raises(MalformedEvent):
        parse_frame(raw, max_frame_size=len(raw) + 1)
