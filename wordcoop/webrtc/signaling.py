"""
Client side of the signaling relay.
"""
import asyncio
import json
from typing import AsyncIterator, List, Optional

import requests
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from wordcoop.core.config import IceServer
from wordcoop.core.exceptions import EstablishmentError, InvalidSessionIdError
from wordcoop.core.logging import LoggerMixin, debug_log
from wordcoop.relay import frames
from wordcoop.relay.frames import RelayFrame, parse_frame


class SignalClient(LoggerMixin):
    """A relay connection that speaks the relay frame format."""

    def __init__(self, signal_address: str, session_id_length: int):
        super().__init__()
        self.signal_address = signal_address
        self.session_id_length = session_id_length
        self._ws = None

    async def connect(self) -> "SignalClient":
        try:
            self._ws = await websockets.connect(self.signal_address)
        except (OSError, InvalidHandshake) as e:
            raise EstablishmentError("relay unreachable", {
                "signal_address": self.signal_address,
                "error": str(e)
            }) from e
        self.log_info("🔌 [Signal] Connected to relay", {"signal_address": self.signal_address})
        return self

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def request_session_id(self) -> str:
        """Ask the relay for a new session id and validate it."""
        await self._send(frames.request_session_id())
        try:
            reply = await self._ws.recv()
        except ConnectionClosed as e:
            raise EstablishmentError("relay closed") from e
        if isinstance(reply, bytes):
            reply = reply.decode("utf-8")
        session_id = reply.strip()
        if not frames.is_valid_session_id(session_id, self.session_id_length):
            raise InvalidSessionIdError("Relay returned an invalid session id", {"session_id": session_id})
        return session_id

    async def join_session(self, session_id: str):
        await self._send(frames.join_session(session_id))

    async def send_description(self, sdp: str):
        await self._send(frames.description(sdp))

    async def send_candidate(self, sdp_mid: Optional[str], candidate: str):
        await self._send(frames.ice_candidate(sdp_mid, candidate))

    async def send_complete(self):
        await self._send(frames.complete())

    async def iter_frames(self) -> AsyncIterator[RelayFrame]:
        """Yield relay frames until the relay closes the socket. Unknown frames are skipped."""
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                try:
                    yield parse_frame(message)
                except ValueError as e:
                    self.log_warning("Ignoring malformed relay frame", {
                        "error": str(e),
                        "frame": message[:200]
                    })
        except ConnectionClosed:
            return

    async def close(self):
        if self._ws is not None:
            await self._ws.close()
            self.log_info("🔌 [Signal] Relay connection closed", {"signal_address": self.signal_address})

    async def _send(self, text: str):
        if self._ws is None:
            raise EstablishmentError("relay not connected")
        debug_log(f"📡 [Signal] Sending relay frame", {"kind": text.split("\n", 1)[0]}, "DEBUG", self.logger)
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            raise EstablishmentError("relay closed") from e


def ice_servers_url(signal_address: str) -> str:
    """Map a relay WebSocket address to its /ice-servers HTTP endpoint."""
    if signal_address.startswith("wss://"):
        base = "https://" + signal_address[len("wss://"):]
    elif signal_address.startswith("ws://"):
        base = "http://" + signal_address[len("ws://"):]
    else:
        base = signal_address
    return base.rstrip("/") + "/ice-servers"


async def fetch_ice_servers(signal_address: str, timeout: float = 5.0) -> List[IceServer]:
    """Fetch the ICE server descriptors the relay hands out."""
    url = ice_servers_url(signal_address)
    loop = asyncio.get_running_loop()

    def make_request():
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response.json()

    try:
        data = await loop.run_in_executor(None, make_request)
    except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
        raise EstablishmentError("ICE server list unavailable", {"url": url, "error": str(e)}) from e

    debug_log(f"🧊 [Signal] Fetched ICE servers", {"url": url, "count": len(data)})
    return [IceServer.from_dict(entry) for entry in data]
