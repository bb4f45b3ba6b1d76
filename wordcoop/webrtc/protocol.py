"""
Peer message protocol.

Both peers declare the messages they accept (``ProtocolAdd``), then say they
are done (``ProtocolFinish``). Application messages travel as
``<name> <json>`` single-line frames and are verified against the schema
registered for ``name`` before dispatch. The protocol carries no
authentication, so any malformed or out-of-sequence frame closes the link.
"""
import json
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Tuple, Union

from wordcoop.core.exceptions import ProtocolViolation
from wordcoop.core.logging import LoggerMixin, debug_log
from wordcoop.webrtc.data_channel import PeerLink
from wordcoop.webrtc.schema import MessageSchema

PROTOCOL_ADD = "ProtocolAdd"
PROTOCOL_FINISH = "ProtocolFinish"
RESERVED_NAMES = frozenset({PROTOCOL_ADD, PROTOCOL_FINISH})


class SendResult(str, Enum):
    SENT = "sent"
    QUEUED = "queued"


class MessageHandler(ABC):
    """Receives the verified payload of one registered message."""

    @abstractmethod
    def handle(self, payload: Any) -> None:
        ...


class CallbackHandler(MessageHandler):
    """Adapts a plain callable to MessageHandler."""

    def __init__(self, callback: Callable[[Any], Any]):
        self.callback = callback

    def handle(self, payload: Any) -> None:
        self.callback(payload)


def _encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


class PeerMessageProtocol(LoggerMixin):
    """Typed two-way messaging over a PeerLink."""

    def __init__(self, link: PeerLink):
        super().__init__()
        self.link = link

        self._schemas: Dict[str, MessageSchema] = {}
        self._handlers: Dict[str, MessageHandler] = {}
        self._remote_samples: Dict[str, Any] = {}

        self.local_finished = False
        self.remote_finished = False
        self._queue: Deque[Tuple[str, Any]] = deque()

        self._closed = False
        self._close_listeners: List[Callable[[], Any]] = []

        # Held frames may close the link while draining
        link.add_close_handler(self._on_link_closed)
        link.add_message_handler(self._on_frame)

    @property
    def session_id(self) -> str:
        return self.link.session_id

    @property
    def ready(self) -> bool:
        return self.local_finished and self.remote_finished

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    def add_close_listener(self, listener: Callable[[], Any]):
        self._close_listeners.append(listener)

    def register_two_way(self, name: str, sample: Any,
                         handler: Union[MessageHandler, Callable[[Any], Any]]) -> "PeerMessageProtocol":
        """Declare a message both peers may send, with the handler for inbound copies."""
        if not name or any(ch.isspace() for ch in name):
            raise ValueError(f"Message name must be non-empty and contain no whitespace: {name!r}")
        if name in RESERVED_NAMES:
            raise ValueError(f"Message name {name!r} is reserved")
        self._ensure_open()
        if self.local_finished:
            self._violate("Registration attempted after the local protocol was finished", {"name": name})
        if name in self._schemas:
            raise ValueError(f"Message {name!r} is already registered")

        schema = MessageSchema.from_sample(sample)
        if not isinstance(handler, MessageHandler):
            handler = CallbackHandler(handler)

        self._schemas[name] = schema
        self._handlers[name] = handler
        self.link.send(f"{PROTOCOL_ADD} {name} {_encode(sample)}")

        self.log_debug(f"➕ [Protocol] Registered two-way message", {"name": name, "schema": schema.describe()})
        return self

    def finish_local(self):
        """Close local registration and tell the peer."""
        self._ensure_open()
        if self.local_finished:
            self._violate("Local protocol finished twice")

        self.local_finished = True
        self.link.send(PROTOCOL_FINISH)
        self.log_info("✅ [Protocol] Local registration finished", {
            "session_id": self.session_id,
            "messages": sorted(self._schemas)
        })

        if self.remote_finished:
            self._on_both_finished()

    def send(self, name: str, payload: Any) -> SendResult:
        """Verify and send a message, queueing it until both sides have finished."""
        self._ensure_open()
        schema = self._schemas.get(name)
        if schema is None or not schema.matches(payload):
            self._violate("Outgoing message does not match its registered shape", {
                "name": name,
                "payload": repr(payload)[:200]
            })

        if not self.ready:
            self._queue.append((name, payload))
            debug_log(f"📥 [Protocol] Message queued until handshake completes", {
                "name": name,
                "queued": len(self._queue)
            }, "DEBUG", self.logger)
            return SendResult.QUEUED

        self._transmit(name, payload)
        return SendResult.SENT

    def close(self):
        self.link.close()

    def _transmit(self, name: str, payload: Any):
        self.link.send(f"{name} {_encode(payload)}")

    def _on_both_finished(self):
        for name, sample in self._remote_samples.items():
            schema = self._schemas.get(name)
            if schema is None or not schema.matches(sample):
                self._violate("Remote protocol declaration does not match the local schema", {
                    "name": name,
                    "sample": repr(sample)[:200]
                })

        pending = list(self._queue)
        self._queue.clear()
        self.log_info("🤝 [Protocol] Handshake complete", {
            "session_id": self.session_id,
            "flushing": len(pending)
        })
        for name, payload in pending:
            self._transmit(name, payload)

    def _on_frame(self, text: str):
        try:
            self._process_frame(text)
        except Exception as e:
            self.log_error("Peer sent an invalid message, disconnecting", {
                "frame": text[:200],
                "error": str(e),
                "error_type": type(e).__name__
            })
            self.close()

    def _process_frame(self, text: str):
        head, _, rest = text.partition(" ")

        if head == PROTOCOL_ADD:
            if self.remote_finished:
                raise ProtocolViolation("Protocol declaration received after the peer finished")
            name, _, raw_sample = rest.partition(" ")
            if not name or name in RESERVED_NAMES or name in self._remote_samples:
                raise ProtocolViolation("Invalid or duplicate protocol declaration", {"name": name})
            sample = json.loads(raw_sample)
            MessageSchema.from_sample(sample)
            self._remote_samples[name] = sample
            return

        if head == PROTOCOL_FINISH:
            if self.remote_finished:
                raise ProtocolViolation("Peer finished its protocol twice")
            self.remote_finished = True
            self.log_info("✅ [Protocol] Remote registration finished", {
                "session_id": self.session_id,
                "messages": sorted(self._remote_samples)
            })
            if self.local_finished:
                self._on_both_finished()
            return

        if not self.ready:
            raise ProtocolViolation("Message received before the handshake completed", {"name": head})

        schema = self._schemas.get(head)
        if schema is None:
            raise ProtocolViolation("Unknown message name", {"name": head})
        payload = json.loads(rest)
        if not schema.matches(payload):
            raise ProtocolViolation("Inbound message does not match its registered shape", {"name": head})

        debug_log(f"🔵 [Protocol] Dispatching message", {"name": head}, "DEBUG", self.logger)
        self._handlers[head].handle(payload)

    def _violate(self, message: str, details: dict = None):
        self.log_error(f"Protocol violation: {message}", details)
        self.close()
        raise ProtocolViolation(message, details)

    def _ensure_open(self):
        if self._closed:
            raise ProtocolViolation("Connection is closed", {"session_id": self.session_id})

    def _on_link_closed(self):
        if self._closed:
            return
        self._closed = True
        self._queue.clear()
        for listener in list(self._close_listeners):
            listener()

    def get_status(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "local_finished": self.local_finished,
            "remote_finished": self.remote_finished,
            "queued": len(self._queue),
            "messages": sorted(self._schemas),
            "remote_messages": sorted(self._remote_samples),
            "closed": self._closed
        }
