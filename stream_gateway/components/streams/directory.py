"""
Stream directory: which stream ids are currently published, and by whom.

Last-streamer-wins: publishing an id that is already published transfers
ownership, and only the current owner can unpublish it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection


class StreamDirectory:
    def __init__(self) -> None:
        # Insertion-ordered: list() returns ids in first-publish order
        self._owners: dict[str, "ClientConnection"] = {}

    def __len__(self) -> int:
        return len(self._owners)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._owners

    def publish(self, stream_id: str, owner: "ClientConnection") -> bool:
        """
        Make `owner` the publisher of `stream_id`.

        Returns True if the id was not listed before (the listing changed).
        """
        is_new = stream_id not in self._owners
        self._owners[stream_id] = owner
        return is_new

    def unpublish(self, stream_id: str, owner: "ClientConnection") -> bool:
        """
        Remove `stream_id` if `owner` is its current publisher.

        Returns True if the id was removed. A superseded publisher gets False.
        """
        if self._owners.get(stream_id) is not owner:
            return False
        del self._owners[stream_id]
        return True

    def owner_of(self, stream_id: str) -> "ClientConnection | None":
        return self._owners.get(stream_id)

    def list(self) -> list[str]:
        return list(self._owners)
