"""
PeerLink: the direct data channel between two players.
"""
import asyncio
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from wordcoop.core.logging import LoggerMixin, debug_log


class PeerLink(LoggerMixin):
    """An open, ordered data channel plus the session id that produced it.

    ``channel`` is an aiortc ``RTCDataChannel`` (or anything exposing the same
    ``on``/``send``/``close``/``readyState`` surface). ``connection`` is the
    owning ``RTCPeerConnection``; it is closed together with the channel.

    Frames that arrive while no message handler is registered are held and
    handed to the first handler added, in arrival order.
    """

    def __init__(self, channel, session_id: str, connection=None):
        super().__init__()
        self.channel = channel
        self.session_id = session_id
        self.connection = connection

        self._message_handlers: List[Callable[[str], Any]] = []
        self._close_handlers: List[Callable[[], Any]] = []
        self._pending: Deque[str] = deque()
        self._closed = False
        self._connection_close: Optional[asyncio.Task] = None

        self.channel.on("message", self._on_message)
        self.channel.on("close", self._on_close)

    @property
    def label(self) -> str:
        return getattr(self.channel, "label", "")

    @property
    def is_open(self) -> bool:
        return not self._closed and self.channel.readyState == "open"

    @property
    def closed(self) -> bool:
        return self._closed

    def add_message_handler(self, handler: Callable[[str], Any]):
        self._message_handlers.append(handler)
        if self._pending:
            debug_log(f"📥 [PeerLink] Delivering held frames", {
                "session_id": self.session_id,
                "count": len(self._pending)
            }, "DEBUG", self.logger)
        while self._pending and not self._closed:
            self._dispatch(self._pending.popleft())

    def add_close_handler(self, handler: Callable[[], Any]):
        """Register a close listener. It runs at once if the link is already closed."""
        self._close_handlers.append(handler)
        if self._closed:
            handler()

    def send(self, text: str) -> bool:
        """Send a text frame to the peer. Returns False if the link is closed."""
        if not self.is_open:
            self.log_warning("Cannot send: link is not open", {
                "session_id": self.session_id,
                "ready_state": self.channel.readyState
            })
            return False

        debug_log(f"📤 [PeerLink] Sending frame", {
            "session_id": self.session_id,
            "length": len(text)
        }, "DEBUG", self.logger)
        self.channel.send(text)
        return True

    def close(self):
        """Close the channel and its peer connection. Safe to call repeatedly.

        The peer connection is closed on the running event loop; without one
        it is left for ``aclose``.
        """
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self.channel.close()
        if self.connection is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._connection_close = loop.create_task(self.connection.close())
        self._notify_closed()

    async def aclose(self):
        """Close the link and wait for the peer connection to shut down."""
        self.close()
        if self._connection_close is not None:
            await self._connection_close
        elif self.connection is not None:
            await self.connection.close()

    def _on_message(self, message):
        if self._closed:
            return
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        if not self._message_handlers:
            self._pending.append(message)
            return
        self._dispatch(message)

    def _dispatch(self, message: str):
        for handler in list(self._message_handlers):
            result = handler(message)
            if asyncio.iscoroutine(result):
                asyncio.ensure_future(result)

    def _on_close(self):
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._notify_closed()

    def _notify_closed(self):
        self.log_info("🔌 [PeerLink] Data channel closed", {
            "session_id": self.session_id,
            "label": self.label
        })
        for handler in list(self._close_handlers):
            try:
                handler()
            except Exception as e:
                self.log_error("Error in close handler", {
                    "error": str(e),
                    "error_type": type(e).__name__
                })
