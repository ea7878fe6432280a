"""Tests for the notification hub."""

import asyncio
import json
import threading

import pytest

from spec_mcp.notifications import (
    CONNECTION_ACK,
    PING,
    PONG,
    SPEC_CREATED,
    NotificationHub,
    make_message,
)


def test_make_message():
    message = make_message(SPEC_CREATED, {"id": 1})
    assert message["type"] == "spec_created"
    assert message["data"] == {"id": 1}
    assert "timestamp" in message
    assert make_message(PING)["data"] == {}


def test_publish_without_loop_is_dropped():
    hub = NotificationHub()
    # Must not raise
    hub.publish(SPEC_CREATED, {"id": 1})


class TestConnections:
    @pytest.mark.asyncio
    async def test_connect_sends_ack(self):
        hub = NotificationHub()
        hub.start(heartbeat=False)

        observer = hub.connect()

        message = observer.queue.get_nowait()
        assert message["type"] == CONNECTION_ACK
        assert message["data"]["client_id"] == observer.client_id
        assert hub.observer_count == 1
        await hub.stop()

    @pytest.mark.asyncio
    async def test_connection_limit(self):
        hub = NotificationHub(max_connections=2)
        hub.start(heartbeat=False)

        assert hub.connect() is not None
        assert hub.connect() is not None
        assert hub.connect() is None
        assert hub.observer_count == 2
        await hub.stop()

    @pytest.mark.asyncio
    async def test_disconnect(self):
        hub = NotificationHub(max_connections=1)
        hub.start(heartbeat=False)
        observer = hub.connect()

        hub.disconnect(observer.client_id)
        hub.disconnect(observer.client_id)

        assert hub.observer_count == 0
        assert hub.connect() is not None
        await hub.stop()

    @pytest.mark.asyncio
    async def test_stop_closes_observers(self):
        hub = NotificationHub()
        hub.start()
        observer = hub.connect()
        observer.queue.get_nowait()

        await hub.stop()

        assert observer.queue.get_nowait() is None
        assert hub.observer_count == 0


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_publish_reaches_every_observer(self):
        hub = NotificationHub()
        hub.start(heartbeat=False)
        first, second = hub.connect(), hub.connect()
        first.queue.get_nowait()
        second.queue.get_nowait()

        hub.publish(SPEC_CREATED, {"id": 7})
        await asyncio.sleep(0)

        for observer in (first, second):
            message = observer.queue.get_nowait()
            assert message["type"] == SPEC_CREATED
            assert message["data"] == {"id": 7}
        await hub.stop()

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self):
        hub = NotificationHub()
        hub.start(heartbeat=False)
        observer = hub.connect()
        observer.queue.get_nowait()

        worker = threading.Thread(target=hub.publish, args=(SPEC_CREATED, {"id": 1}))
        worker.start()
        worker.join()

        message = await asyncio.wait_for(observer.queue.get(), timeout=1)
        assert message["data"] == {"id": 1}
        await hub.stop()

    @pytest.mark.asyncio
    async def test_late_observer_gets_no_replay(self):
        hub = NotificationHub()
        hub.start(heartbeat=False)

        hub.publish(SPEC_CREATED, {"id": 1})
        await asyncio.sleep(0)
        observer = hub.connect()

        assert observer.queue.get_nowait()["type"] == CONNECTION_ACK
        assert observer.queue.empty()
        await hub.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops_messages(self):
        hub = NotificationHub(queue_size=2)
        hub.start(heartbeat=False)
        observer = hub.connect()

        for i in range(5):
            hub.publish(SPEC_CREATED, {"id": i})
        await asyncio.sleep(0)

        assert observer.queue.qsize() == 2
        await hub.stop()
        # The close marker still gets through
        items = [observer.queue.get_nowait() for _ in range(observer.queue.qsize())]
        assert items[-1] is None


class TestMessages:
    @pytest.mark.asyncio
    async def test_ping_answered_with_pong(self):
        hub = NotificationHub()
        hub.start(heartbeat=False)
        observer = hub.connect()
        observer.queue.get_nowait()

        hub.handle_message(observer, json.dumps({"type": "ping"}))

        assert observer.queue.get_nowait()["type"] == PONG
        await hub.stop()

    @pytest.mark.asyncio
    async def test_pong_refreshes_liveness(self):
        hub = NotificationHub()
        hub.start(heartbeat=False)
        observer = hub.connect()
        observer.queue.get_nowait()
        observer.last_seen = 0

        hub.handle_message(observer, json.dumps({"type": "pong"}))

        assert observer.last_seen > 0
        assert observer.queue.empty()
        await hub.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", '{"type": "subscribe"}', "[]"])
    async def test_invalid_messages_ignored(self, raw):
        hub = NotificationHub()
        hub.start(heartbeat=False)
        observer = hub.connect()
        observer.queue.get_nowait()

        hub.handle_message(observer, raw)

        assert observer.queue.empty()
        assert hub.observer_count == 1
        await hub.stop()


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_sweep_pings_live_observers(self):
        hub = NotificationHub(heartbeat_interval=30, heartbeat_timeout=60)
        hub.start(heartbeat=False)
        observer = hub.connect()
        observer.queue.get_nowait()

        dropped = hub.sweep(now=observer.last_seen + 30)

        assert dropped == []
        assert observer.queue.get_nowait()["type"] == PING
        await hub.stop()

    @pytest.mark.asyncio
    async def test_sweep_drops_silent_observers(self):
        hub = NotificationHub(heartbeat_interval=30, heartbeat_timeout=60)
        hub.start(heartbeat=False)
        silent = hub.connect()
        alive = hub.connect()
        silent.queue.get_nowait()
        alive.last_seen = silent.last_seen + 100

        dropped = hub.sweep(now=silent.last_seen + 61)

        assert dropped == [silent.client_id]
        assert silent.queue.get_nowait() is None
        assert hub.observer_count == 1
        await hub.stop()

    @pytest.mark.asyncio
    async def test_heartbeat_task_runs(self):
        hub = NotificationHub(heartbeat_interval=0.01, heartbeat_timeout=10)
        hub.start()
        observer = hub.connect()
        observer.queue.get_nowait()

        message = await asyncio.wait_for(observer.queue.get(), timeout=1)

        assert message["type"] == PING
        await hub.stop()
