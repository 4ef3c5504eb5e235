"""
Connection registry.

Maps each live connection to the role and stream id it declared, holds the
per-connection frame priming slot, and answers "who subscribes to X".
All mutation happens inside a hub turn, so there is no locking here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, TYPE_CHECKING

from stream_gateway.components.core.constants import ALL_STREAMS, ClientRole

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection


@dataclass(frozen=True)
class ClientInfo:
    """What a connection declared in its latest register message."""

    role: ClientRole
    stream_id: str

    @property
    def is_streamer(self) -> bool:
        return self.role == ClientRole.STREAMER

    @property
    def is_multi_viewer(self) -> bool:
        return self.role == ClientRole.MULTI_VIEWER

    def subscribes_to(self, stream_id: str) -> bool:
        """
        Whether frames of `stream_id` should reach this client.

        Matching is on the declared stream id only (exact or "all"), for any
        role. Streamers never receive their own frames because the sender is
        excluded at broadcast time.
        """
        return self.stream_id == stream_id or self.stream_id == ALL_STREAMS


class ConnectionRegistry:
    """
    Tracks live connections and their ClientInfo.

    A connection is added when its handshake completes and gets ClientInfo
    only after it sends register. At most one ClientInfo per connection;
    registering again overwrites.
    """

    def __init__(self) -> None:
        # Insertion-ordered so fan-out order follows connection order
        self._connections: dict["ClientConnection", ClientInfo | None] = {}
        self._primed: dict["ClientConnection", str] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: object) -> bool:
        return conn in self._connections

    def add(self, conn: "ClientConnection") -> None:
        self._connections.setdefault(conn, None)

    def register(
        self,
        conn: "ClientConnection",
        role: ClientRole,
        stream_id: str,
    ) -> ClientInfo | None:
        """
        Record or overwrite the connection's ClientInfo.

        Returns the ClientInfo it replaced, or None on first registration.
        """
        previous = self._connections.get(conn)
        self._connections[conn] = ClientInfo(role=role, stream_id=stream_id)
        return previous

    def get(self, conn: "ClientConnection") -> ClientInfo | None:
        return self._connections.get(conn)

    def remove(self, conn: "ClientConnection") -> ClientInfo | None:
        """
        Forget a connection. Safe to call repeatedly.

        Returns the ClientInfo it had, or None if unregistered or unknown.
        """
        self._primed.pop(conn, None)
        return self._connections.pop(conn, None)

    # =========================================================================
    # Frame priming
    # =========================================================================

    def prime_frame(self, conn: "ClientConnection", stream_id: str) -> None:
        """Tag the next data payload from `conn` with `stream_id`."""
        self._primed[conn] = stream_id

    def take_primed(self, conn: "ClientConnection") -> str | None:
        """Consume the priming slot."""
        return self._primed.pop(conn, None)

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def connections(self) -> list["ClientConnection"]:
        return list(self._connections)

    def registered(self) -> Iterable[tuple["ClientConnection", ClientInfo]]:
        for conn, info in list(self._connections.items()):
            if info is not None:
                yield conn, info

    def subscribers_of(
        self,
        stream_id: str,
        exclude: "ClientConnection | None" = None,
    ) -> list["ClientConnection"]:
        """Connections whose ClientInfo matches `stream_id`, minus `exclude`."""
        return [
            conn
            for conn, info in self.registered()
            if conn is not exclude and info.subscribes_to(stream_id)
        ]

    def multi_viewers(self) -> list["ClientConnection"]:
        return [conn for conn, info in self.registered() if info.is_multi_viewer]

    def count_viewers(self, stream_id: str) -> int:
        """Non-streamer connections that would receive `stream_id` frames."""
        return sum(
            1
            for _, info in self.registered()
            if not info.is_streamer and info.subscribes_to(stream_id)
        )

    def get_stats(self) -> dict[str, int]:
        by_role = {role.value: 0 for role in ClientRole}
        unregistered = 0
        for info in self._connections.values():
            if info is None:
                unregistered += 1
            else:
                by_role[info.role.value] += 1
        return {
            "total_connections": len(self._connections),
            "unregistered": unregistered,
            "streamers": by_role[ClientRole.STREAMER.value],
            "viewers": by_role[ClientRole.VIEWER.value],
            "multi_viewers": by_role[ClientRole.MULTI_VIEWER.value],
            "primed": len(self._primed),
        }
