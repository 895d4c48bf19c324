"""
Remote session handle with explicit readiness.

The remote connection resolves only after the transport's open() returns,
while the input pipeline may already be producing chunks (on_open can fire
first). Instead of chaining every send onto a future, sends and the close
request go into one FIFO queue that a single drain task empties once the
connection is known.

Guarantees:
- Submission order is preserved for sends and for the close request.
- Submitting never blocks and never awaits the network.
- A send failure is logged and the next chunk is still attempted.
- Nothing is accepted after close has been requested.
- If the connection never resolves (setup failed), abandon() discards
  everything queued.
"""

from __future__ import annotations

import asyncio
from typing import Union

from adapters.live.base import LiveConnection
from audio.frames import WireAudioChunk
from observability.logger import log_event, now_ms


class _CloseRequest:
    """Queue sentinel."""


_CLOSE = _CloseRequest()

_QueueItem = Union[WireAudioChunk, _CloseRequest]


class PendingSession:
    """Ordered outbound channel to a not-yet-resolved LiveConnection."""

    def __init__(self, *, session_id: str) -> None:
        self._session_id = session_id
        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._connection: asyncio.Future[LiveConnection] = (
            asyncio.get_running_loop().create_future()
        )
        self._close_requested = False
        self._drain_task: asyncio.Task[None] = asyncio.create_task(self._drain())

        self.sent = 0
        self.failed = 0

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    @property
    def is_resolved(self) -> bool:
        """True once the connection is known."""
        return self._connection.done() and not self._connection.cancelled()

    @property
    def close_requested(self) -> bool:
        """True once request_close() has been called."""
        return self._close_requested

    def resolve(self, connection: LiveConnection) -> None:
        """Hand over the opened connection; queued items start draining."""
        if not self._connection.done():
            self._connection.set_result(connection)

    def abandon(self) -> None:
        """The connection will never resolve: drop everything queued."""
        if not self._connection.done():
            self._connection.cancel()
        self._close_requested = True
        self._drain_task.cancel()

    # ------------------------------------------------------------------
    # Submission (event loop thread, non-blocking)
    # ------------------------------------------------------------------

    def send_realtime_input(self, chunk: WireAudioChunk) -> None:
        """Queue one chunk; dropped once close has been requested."""
        if self._close_requested:
            return
        self._queue.put_nowait(chunk)

    def request_close(self) -> None:
        """Queue the close request behind any pending chunks. Idempotent."""
        if self._close_requested:
            return
        self._close_requested = True
        self._queue.put_nowait(_CLOSE)

    async def wait_drained(self) -> None:
        """Wait until the close request has been executed (or abandoned)."""
        try:
            await asyncio.shield(self._drain_task)
        except asyncio.CancelledError:
            if not self._drain_task.cancelled():
                raise

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _drain(self) -> None:
        connection = await self._connection

        while True:
            item = await self._queue.get()

            if isinstance(item, _CloseRequest):
                try:
                    await connection.close()
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    # Close is best-effort; teardown has already completed
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "LIVE_CLOSE_ERROR",
                        "session_id": self._session_id,
                        "error": f"{type(exc).__name__}: {exc}",
                    })
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "LIVE_SEND_SUMMARY",
                    "session_id": self._session_id,
                    "sent": self.sent,
                    "failed": self.failed,
                })
                return

            try:
                await connection.send_realtime_input(item)
                self.sent += 1
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self.failed += 1
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "LIVE_SEND_FAILED",
                    "session_id": self._session_id,
                    "error": f"{type(exc).__name__}: {exc}",
                })
