"""
Tests for StreamHub turns: registration, frame relay, disconnect cleanup,
slow consumers, the health monitor and shutdown.

Sends leave the hub through per-connection outboxes, so tests call
`hub.drain()` before looking at what a socket received.
"""

import asyncio
import json

import pytest

from stream_gateway.components.connection.handle import ConnectionState
from stream_gateway.components.connection.registry import ClientInfo
from stream_gateway.components.core.constants import MSG_PONG_JSON, ClientRole, WSCloseCode
from stream_gateway.components.protocol.framing import encode_framed_payload
from stream_gateway.components.streams.tiers import StreamTier, TierTable
from stream_gateway.hub import StreamHub

from tests.conftest import connect, connect_as, register_message


def active_streams(conn) -> list[list[str]]:
    return [m["streams"] for m in conn.websocket.messages_of_type("active-streams")]


class TestRegistration:
    @pytest.mark.asyncio
    async def test_streamer_publishes_and_announces(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        await connect_as(hub, "streamer", "cam1")
        await hub.drain()

        assert hub.list_streams() == ["cam1"]
        assert active_streams(watcher) == [[], ["cam1"]]

    @pytest.mark.asyncio
    async def test_multi_viewer_gets_current_list(self, hub):
        await connect_as(hub, "streamer", "main")
        await connect_as(hub, "streamer", "depth")
        watcher = await connect_as(hub, "multi-viewer", "all")
        await hub.drain()

        assert active_streams(watcher) == [["main", "depth"]]

    @pytest.mark.asyncio
    async def test_viewer_registration_does_not_announce(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        await connect_as(hub, "viewer", "cam1")
        await hub.drain()

        assert active_streams(watcher) == [[]]
        assert hub.list_streams() == []

    @pytest.mark.asyncio
    async def test_latest_register_wins_even_on_wildcard(self, hub):
        conn = await connect_as(hub, "viewer", "cam1")

        await hub.handle_message(conn, register_message("streamer", "all"))

        assert hub.registry.get(conn) == ClientInfo(ClientRole.STREAMER, "all")
        assert hub.list_streams() == []

        await hub.handle_message(conn, b"frame")
        assert hub.metrics.get_snapshot()["frames_unrouted"] == 1
        assert hub.buffer.get_stats()["buffered_frames"] == 0

    @pytest.mark.asyncio
    async def test_streamer_moving_to_wildcard_releases_its_stream(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")

        await hub.handle_message(streamer, register_message("streamer", "all"))
        await hub.drain()

        assert hub.list_streams() == []
        assert hub.registry.get(streamer) == ClientInfo(ClientRole.STREAMER, "all")
        assert active_streams(watcher) == [[], ["cam1"], []]

    @pytest.mark.asyncio
    async def test_reregistering_releases_old_stream(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")

        await hub.handle_message(streamer, register_message("streamer", "cam2"))
        await hub.drain()

        assert hub.list_streams() == ["cam2"]
        assert active_streams(watcher)[-1] == ["cam2"]

    @pytest.mark.asyncio
    async def test_streamer_becoming_viewer_unpublishes(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")

        await hub.handle_message(streamer, register_message("viewer", "cam1"))
        await hub.drain()

        assert hub.list_streams() == []
        assert active_streams(watcher)[-1] == []

    @pytest.mark.asyncio
    async def test_ping_is_answered(self, hub):
        conn = await connect(hub)
        await hub.handle_message(conn, "ping")
        await hub.handle_message(conn, '{"type":"ping"}')
        await hub.drain()

        assert conn.websocket.texts == [MSG_PONG_JSON, MSG_PONG_JSON]
        assert hub.metrics.get_snapshot()["controls_ping"] == 2


class TestFrameRelay:
    @pytest.mark.asyncio
    async def test_newest_frame_reaches_viewers(self, hub):
        streamer = await connect_as(hub, "streamer", "cam1")
        viewer = await connect_as(hub, "viewer", "cam1")
        watcher = await connect_as(hub, "multi-viewer", "all")
        other = await connect_as(hub, "viewer", "cam2")

        await hub.handle_message(streamer, b"f1")
        await hub.drain()
        assert viewer.websocket.frames == []

        await hub.handle_message(streamer, b"f2")
        await hub.drain()

        assert viewer.websocket.frames == [b"f2"]
        assert watcher.websocket.frames == [b"f2"]
        assert other.websocket.frames == []
        assert streamer.websocket.frames == []

    @pytest.mark.asyncio
    async def test_text_data_is_relayed_as_bytes(self, hub):
        streamer = await connect_as(hub, "streamer", "cam1")
        viewer = await connect_as(hub, "viewer", "cam1")

        await hub.handle_message(streamer, "data:image/jpeg;base64,AAA")
        await hub.handle_message(streamer, "data:image/jpeg;base64,BBB")
        await hub.drain()

        assert viewer.websocket.frames == [b"data:image/jpeg;base64,BBB"]

    @pytest.mark.asyncio
    async def test_primed_frame_goes_to_primed_stream(self, hub):
        streamer = await connect_as(hub, "streamer", "main")
        depth_viewer = await connect_as(hub, "viewer", "depth")

        for payload in (b"d1", b"d2", b"d3"):
            await hub.handle_message(streamer, json.dumps({"type": "frame", "streamId": "depth"}))
            await hub.handle_message(streamer, payload)
        await hub.drain()

        assert depth_viewer.websocket.frames == [b"d3"]
        assert hub.buffer.pending("main") == 0

    @pytest.mark.asyncio
    async def test_priming_applies_to_one_payload(self, hub):
        streamer = await connect_as(hub, "streamer", "main")

        await hub.handle_message(streamer, json.dumps({"type": "frame", "streamId": "depth"}))
        await hub.handle_message(streamer, b"primed")
        await hub.handle_message(streamer, b"plain")

        assert hub.buffer.pending("depth") == 1
        assert hub.buffer.pending("main") == 1

    @pytest.mark.asyncio
    async def test_framed_header_wins_over_priming(self, hub):
        streamer = await connect_as(hub, "streamer", "main")

        await hub.handle_message(streamer, json.dumps({"type": "frame", "streamId": "depth"}))
        await hub.handle_message(streamer, encode_framed_payload("cam9", b"x"))

        assert hub.buffer.pending("cam9") == 1
        assert hub.buffer.pending("depth") == 0
        assert hub.registry.take_primed(streamer) is None

    @pytest.mark.asyncio
    async def test_data_from_viewer_is_dropped(self, hub):
        viewer = await connect_as(hub, "viewer", "cam1")
        unregistered = await connect(hub)

        await hub.handle_message(viewer, b"frame")
        await hub.handle_message(unregistered, b"frame")

        snapshot = hub.metrics.get_snapshot()
        assert snapshot["frames_received"] == 2
        assert snapshot["frames_unrouted"] == 2
        assert hub.buffer.get_stats()["buffered_frames"] == 0

    @pytest.mark.asyncio
    async def test_content_prefix(self, clock):
        hub = StreamHub(content_prefix=b"PFX:", clock=clock)
        streamer = await connect_as(hub, "streamer", "cam1")
        viewer = await connect_as(hub, "viewer", "cam1")

        await hub.handle_message(streamer, b"a")
        await hub.handle_message(streamer, b"b")
        await hub.drain()

        assert viewer.websocket.frames == [b"PFX:b"]
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_capacity_one_tier_relays_every_frame(self, clock):
        tiers = TierTable({"live": StreamTier("live", capacity=1, max_age=0.1, priority=1)})
        hub = StreamHub(tiers=tiers, clock=clock)
        streamer = await connect_as(hub, "streamer", "live")
        viewer = await connect_as(hub, "viewer", "live")

        await hub.handle_message(streamer, b"a")
        await hub.handle_message(streamer, b"b")
        await hub.drain()

        assert viewer.websocket.frames == [b"a", b"b"]
        await hub.shutdown()


class TestSlowConsumers:
    @pytest.mark.asyncio
    async def test_stalled_viewer_does_not_block_other_streams(self, hub):
        cam1 = await connect_as(hub, "streamer", "cam1")
        stalled = await connect_as(hub, "viewer", "cam1")
        cam2 = await connect_as(hub, "streamer", "cam2")
        viewer = await connect_as(hub, "viewer", "cam2")
        stalled.websocket.stall_sends = True

        await hub.handle_message(cam1, b"a1")
        await hub.handle_message(cam1, b"a2")
        await asyncio.sleep(0)  # the stalled writer is now stuck in send

        await asyncio.wait_for(hub.handle_message(cam2, b"x"), timeout=0.5)
        await asyncio.wait_for(hub.handle_message(cam2, b"y"), timeout=0.5)
        await asyncio.wait_for(hub.drain(viewer), timeout=0.5)

        assert viewer.websocket.frames == [b"y"]
        assert stalled.websocket.frames == []

        await asyncio.wait_for(hub.run_monitor_tick(), timeout=0.5)
        assert await asyncio.wait_for(hub.close_connection(stalled), timeout=0.5) is True
        assert stalled not in hub.registry

    @pytest.mark.asyncio
    async def test_failed_send_marks_connection_dead(self, hub):
        streamer = await connect_as(hub, "streamer", "cam1")
        broken = await connect_as(hub, "viewer", "cam1")
        broken.websocket.fail_sends = True

        await hub.handle_message(streamer, b"f1")
        await hub.handle_message(streamer, b"f2")
        await hub.drain()

        assert hub.cleanup.is_marked_dead(broken)
        assert hub.metrics.get_snapshot()["sends_failed"] == 1


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_streamer_close_unpublishes(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")
        await hub.handle_message(streamer, b"pending")

        assert await hub.close_connection(streamer, cause="client_disconnect") is True
        await hub.drain()

        assert hub.list_streams() == []
        assert active_streams(watcher)[-1] == []
        assert hub.buffer.pending("cam1") == 0
        assert streamer.state == ConnectionState.CLOSED
        assert streamer not in hub.registry

    @pytest.mark.asyncio
    async def test_streamer_close_announces_exactly_once(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")
        await hub.drain()
        before = len(active_streams(watcher))

        assert await hub.close_connection(streamer, cause="client_disconnect") is True
        assert await hub.close_connection(streamer) is False
        assert await hub.close_connection(streamer, errored=True, cause="late_error") is False
        await hub.drain()

        assert len(active_streams(watcher)) == before + 1
        assert streamer.state == ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_errored_streamer_announces_exactly_once(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")
        await hub.drain()
        before = len(active_streams(watcher))

        assert await hub.close_connection(streamer, errored=True, cause="reset") is True
        assert await hub.close_connection(streamer, cause="client_disconnect") is False
        await hub.drain()

        assert len(active_streams(watcher)) == before + 1
        assert streamer.state == ConnectionState.ERRORED

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, hub):
        conn = await connect_as(hub, "viewer", "cam1")

        assert await hub.close_connection(conn) is True
        assert await hub.close_connection(conn) is False
        assert await hub.close_connection(conn, errored=True) is False

        assert hub.metrics.get_snapshot()["connections_closed"] == 1
        assert conn.state == ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_superseded_streamer_close_keeps_stream(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        first = await connect_as(hub, "streamer", "cam1")
        second = await connect_as(hub, "streamer", "cam1")
        await hub.drain()
        announcements = len(active_streams(watcher))

        await hub.close_connection(first)
        await hub.drain()

        assert hub.list_streams() == ["cam1"]
        assert hub.directory.owner_of("cam1") is second
        assert len(active_streams(watcher)) == announcements

    @pytest.mark.asyncio
    async def test_messages_after_close_are_ignored(self, hub):
        conn = await connect(hub)
        await hub.close_connection(conn)

        await hub.handle_message(conn, register_message("streamer", "cam1"))

        assert hub.list_streams() == []
        assert conn not in hub.registry


class TestHealthMonitor:
    @pytest.mark.asyncio
    async def test_stale_buffer_is_force_flushed(self, hub, clock):
        streamer = await connect_as(hub, "streamer", "cam1")
        viewer = await connect_as(hub, "viewer", "cam1")
        await hub.handle_message(streamer, b"lonely")

        clock.advance(0.25)
        report = await hub.run_monitor_tick()
        assert report.forced_flushes == 0

        clock.advance(0.1)
        report = await hub.run_monitor_tick()
        await hub.drain()

        assert report.forced_flushes == 1
        # Stale by the time it is forced, so nothing is relayed
        assert report.frames_relayed == 0
        assert viewer.websocket.frames == []
        assert hub.metrics.get_snapshot()["frames_dropped_stale"] == 1

    @pytest.mark.asyncio
    async def test_forced_flush_relays_newest_fresh_frame(self, hub, clock):
        streamer = await connect_as(hub, "streamer", "main")
        viewer = await connect_as(hub, "viewer", "main")

        await hub.handle_message(streamer, b"old")
        clock.advance(0.08)
        await hub.handle_message(streamer, b"new")
        clock.advance(0.05)

        report = await hub.run_monitor_tick()
        await hub.drain()

        assert report.forced_flushes == 1
        assert report.frames_relayed == 1
        assert viewer.websocket.frames == [b"new"]
        snapshot = hub.metrics.get_snapshot()
        assert snapshot["flushes_forced"] == 1
        assert snapshot["frames_dropped_stale"] == 1

    @pytest.mark.asyncio
    async def test_dead_viewer_is_removed_on_tick(self, hub):
        streamer = await connect_as(hub, "streamer", "cam1")
        broken = await connect_as(hub, "viewer", "cam1")
        healthy = await connect_as(hub, "viewer", "cam1")
        broken.websocket.fail_sends = True

        await hub.handle_message(streamer, b"f1")
        await hub.handle_message(streamer, b"f2")
        await hub.drain()

        assert healthy.websocket.frames == [b"f2"]
        assert hub.cleanup.is_marked_dead(broken)

        report = await hub.run_monitor_tick()

        assert report.dead_cleaned == 1
        assert broken not in hub.registry
        assert broken.state == ConnectionState.ERRORED
        assert broken.websocket.close_code == WSCloseCode.GOING_AWAY

    @pytest.mark.asyncio
    async def test_vanished_socket_is_pruned(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")
        streamer.websocket.drop()

        report = await hub.run_monitor_tick()
        await hub.drain()

        assert report.pruned == 1
        assert hub.list_streams() == []
        assert active_streams(watcher)[-1] == []

    @pytest.mark.asyncio
    async def test_stream_status_sent_on_change(self, hub):
        streamer = await connect_as(hub, "streamer", "cam1")

        await hub.run_monitor_tick()
        await connect_as(hub, "viewer", "cam1")
        await connect_as(hub, "multi-viewer", "all")
        await hub.run_monitor_tick()
        await hub.run_monitor_tick()
        await hub.drain()

        statuses = streamer.websocket.messages_of_type("streamStatus")
        assert statuses == [
            {"type": "streamStatus", "streamId": "cam1", "activeViewers": 0, "timestamp": 1_700_000_000_000},
            {"type": "streamStatus", "streamId": "cam1", "activeViewers": 2, "timestamp": 1_700_000_000_000},
        ]

    @pytest.mark.asyncio
    async def test_stream_status_sent_to_new_owner(self, hub):
        first = await connect_as(hub, "streamer", "cam1")
        await connect_as(hub, "viewer", "cam1")
        await hub.run_monitor_tick()

        second = await connect_as(hub, "streamer", "cam1")
        report = await hub.run_monitor_tick()
        again = await hub.run_monitor_tick()
        await hub.drain()

        assert report.status_events == 1
        assert again.status_events == 0
        assert [s["activeViewers"] for s in second.websocket.messages_of_type("streamStatus")] == [1]
        assert len(first.websocket.messages_of_type("streamStatus")) == 1

    @pytest.mark.asyncio
    async def test_stream_status_can_be_disabled(self, clock):
        hub = StreamHub(status_events_enabled=False, clock=clock)
        streamer = await connect_as(hub, "streamer", "cam1")
        await connect_as(hub, "viewer", "cam1")

        report = await hub.run_monitor_tick()
        await hub.drain()

        assert report.status_events == 0
        assert streamer.websocket.messages_of_type("streamStatus") == []


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_closes_everyone_quietly(self, hub):
        watcher = await connect_as(hub, "multi-viewer", "all")
        streamer = await connect_as(hub, "streamer", "cam1")
        await hub.drain()
        announcements = len(active_streams(watcher))

        closed = await hub.shutdown()

        assert closed == 2
        assert hub.is_shutting_down()
        assert hub.total_connections == 0
        assert hub.list_streams() == []
        assert watcher.websocket.close_code == WSCloseCode.GOING_AWAY
        assert streamer.websocket.close_code == WSCloseCode.GOING_AWAY
        assert len(active_streams(watcher)) == announcements
        assert hub.get_stats()["outbox"] == {"outboxes": 0, "queued_messages": 0}


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_shape(self, hub):
        await connect_as(hub, "streamer", "cam1")
        await connect_as(hub, "viewer", "cam1")
        await connect(hub)

        stats = hub.get_stats()

        assert stats["total_connections"] == 3
        assert stats["active_streams"] == 1
        assert stats["streams"] == ["cam1"]
        assert stats["viewers_per_stream"] == {"cam1": 1}
        assert stats["registry"]["unregistered"] == 1
        assert stats["dead_connections_pending"] == 0
        assert stats["metrics"]["connections_opened"] == 3
