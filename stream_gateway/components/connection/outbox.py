"""
Per-connection send queue.

Hub turns never await a socket send. They put the message on the
recipient's outbox and move on; a writer task per connection drains the
outbox in order. A peer that stops reading only stalls its own writer.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from stream_gateway.components.core.constants import WSConstants

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection

logger = get_logger(__name__)

OutboundMessage = bytes | str | dict[str, Any]
FailureCallback = Callable[["ClientConnection"], Awaitable[None]]


class ConnectionOutbox:
    """
    Bounded FIFO of outbound messages for one connection, plus its writer.

    `put` never blocks: when the queue is full the message is dropped.
    The first failed send stops the outbox, discards whatever is still
    queued and reports the connection through `on_failure`.
    """

    def __init__(
        self,
        conn: "ClientConnection",
        on_failure: FailureCallback,
        on_sent: Callable[[], None] | None = None,
        maxsize: int = WSConstants.OUTBOX_SIZE,
    ) -> None:
        self._conn = conn
        self._on_failure = on_failure
        self._on_sent = on_sent
        self._queue: asyncio.Queue[OutboundMessage] = asyncio.Queue(maxsize=maxsize)
        self._writer: asyncio.Task | None = None
        self._stopped = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def put(self, message: OutboundMessage) -> bool:
        """Queue `message` for sending. Returns False if it was dropped."""
        if self._stopped:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False

        if self._writer is None:
            self._writer = asyncio.create_task(
                self._writer_loop(),
                name=f"outbox_{self._conn.connection_id}",
            )
        return True

    async def join(self) -> None:
        """Wait until everything queued so far was sent or discarded."""
        await self._queue.join()

    def close(self) -> asyncio.Task | None:
        """
        Stop the outbox and cancel its writer.

        Returns the writer task (if one was started) so the caller can
        wait for it to finish.
        """
        self._stopped = True
        self._discard_pending()
        writer = self._writer
        if writer is not None and not writer.done() and writer is not asyncio.current_task():
            writer.cancel()
        return writer

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def _writer_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if not await self._send(message):
                    # join() returns only once the failure has been reported
                    self._stopped = True
                    self._discard_pending()
                    await self._on_failure(self._conn)
                    return
            finally:
                self._queue.task_done()

    async def _send(self, message: OutboundMessage) -> bool:
        conn = self._conn
        if not conn.is_open:
            return False

        try:
            if isinstance(message, bytes):
                await conn.send_bytes(message)
            elif isinstance(message, str):
                await conn.send_text(message)
            else:
                await conn.send_json(message)
        except Exception as e:
            logger.warning(
                "Send failed",
                connection_id=conn.connection_id,
                error=type(e).__name__,
                message=str(e),
            )
            return False

        if self._on_sent is not None:
            self._on_sent()
        return True
