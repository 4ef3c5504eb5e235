"""
Tests for the connection registry and the stream directory.
"""

from stream_gateway.components.connection.handle import ClientConnection
from stream_gateway.components.connection.registry import ClientInfo, ConnectionRegistry
from stream_gateway.components.core.constants import ClientRole
from stream_gateway.components.streams.directory import StreamDirectory

from tests.conftest import FakeWebSocket


def make_conn() -> ClientConnection:
    return ClientConnection(FakeWebSocket())


class TestClientInfo:
    def test_exact_match(self):
        info = ClientInfo(ClientRole.VIEWER, "cam1")
        assert info.subscribes_to("cam1")
        assert not info.subscribes_to("cam2")

    def test_wildcard_matches_everything(self):
        info = ClientInfo(ClientRole.MULTI_VIEWER, "all")
        assert info.subscribes_to("cam1")
        assert info.subscribes_to("depth")

    def test_role_flags(self):
        assert ClientInfo(ClientRole.STREAMER, "cam1").is_streamer
        assert ClientInfo(ClientRole.MULTI_VIEWER, "all").is_multi_viewer
        assert not ClientInfo(ClientRole.VIEWER, "cam1").is_streamer


class TestConnectionRegistry:
    def test_added_connection_is_unregistered(self):
        registry = ConnectionRegistry()
        conn = make_conn()
        registry.add(conn)
        assert conn in registry
        assert registry.get(conn) is None
        assert registry.get_stats()["unregistered"] == 1

    def test_register_returns_previous(self):
        registry = ConnectionRegistry()
        conn = make_conn()
        registry.add(conn)

        assert registry.register(conn, ClientRole.STREAMER, "cam1") is None
        previous = registry.register(conn, ClientRole.VIEWER, "cam2")

        assert previous == ClientInfo(ClientRole.STREAMER, "cam1")
        assert registry.get(conn) == ClientInfo(ClientRole.VIEWER, "cam2")

    def test_subscribers_exclude_sender_and_unregistered(self):
        registry = ConnectionRegistry()
        streamer, viewer, watcher, other, idle = (make_conn() for _ in range(5))
        for conn in (streamer, viewer, watcher, other, idle):
            registry.add(conn)
        registry.register(streamer, ClientRole.STREAMER, "cam1")
        registry.register(viewer, ClientRole.VIEWER, "cam1")
        registry.register(watcher, ClientRole.MULTI_VIEWER, "all")
        registry.register(other, ClientRole.VIEWER, "cam2")

        subscribers = registry.subscribers_of("cam1", exclude=streamer)

        assert subscribers == [viewer, watcher]

    def test_streamer_declaring_stream_receives_other_publishers_frames(self):
        registry = ConnectionRegistry()
        first, second = make_conn(), make_conn()
        registry.add(first)
        registry.add(second)
        registry.register(first, ClientRole.STREAMER, "cam1")
        registry.register(second, ClientRole.STREAMER, "cam1")

        assert registry.subscribers_of("cam1", exclude=second) == [first]

    def test_count_viewers_ignores_streamers(self):
        registry = ConnectionRegistry()
        streamer, viewer, watcher = make_conn(), make_conn(), make_conn()
        for conn in (streamer, viewer, watcher):
            registry.add(conn)
        registry.register(streamer, ClientRole.STREAMER, "cam1")
        registry.register(viewer, ClientRole.VIEWER, "cam1")
        registry.register(watcher, ClientRole.MULTI_VIEWER, "all")

        assert registry.count_viewers("cam1") == 2
        assert registry.count_viewers("cam2") == 1

    def test_priming_is_consumed_once(self):
        registry = ConnectionRegistry()
        conn = make_conn()
        registry.add(conn)
        registry.prime_frame(conn, "depth")

        assert registry.get_stats()["primed"] == 1
        assert registry.take_primed(conn) == "depth"
        assert registry.take_primed(conn) is None

    def test_remove_clears_priming(self):
        registry = ConnectionRegistry()
        conn = make_conn()
        registry.add(conn)
        registry.register(conn, ClientRole.STREAMER, "cam1")
        registry.prime_frame(conn, "depth")

        assert registry.remove(conn) == ClientInfo(ClientRole.STREAMER, "cam1")
        assert conn not in registry
        assert registry.take_primed(conn) is None
        assert registry.remove(conn) is None

    def test_stats_by_role(self):
        registry = ConnectionRegistry()
        conns = [make_conn() for _ in range(4)]
        for conn in conns:
            registry.add(conn)
        registry.register(conns[0], ClientRole.STREAMER, "cam1")
        registry.register(conns[1], ClientRole.VIEWER, "cam1")
        registry.register(conns[2], ClientRole.MULTI_VIEWER, "all")

        stats = registry.get_stats()
        assert stats == {
            "total_connections": 4,
            "unregistered": 1,
            "streamers": 1,
            "viewers": 1,
            "multi_viewers": 1,
            "primed": 0,
        }


class TestStreamDirectory:
    def test_publish_reports_new_listing(self):
        directory = StreamDirectory()
        owner = make_conn()
        assert directory.publish("cam1", owner) is True
        assert directory.publish("cam1", owner) is False
        assert directory.list() == ["cam1"]

    def test_list_keeps_publish_order(self):
        directory = StreamDirectory()
        owner = make_conn()
        for stream_id in ("main", "depth", "cam1"):
            directory.publish(stream_id, owner)
        assert directory.list() == ["main", "depth", "cam1"]

    def test_last_streamer_wins(self):
        directory = StreamDirectory()
        first, second = make_conn(), make_conn()
        directory.publish("cam1", first)
        directory.publish("cam1", second)

        assert directory.owner_of("cam1") is second
        assert directory.unpublish("cam1", first) is False
        assert "cam1" in directory
        assert directory.unpublish("cam1", second) is True
        assert "cam1" not in directory
        assert len(directory) == 0
