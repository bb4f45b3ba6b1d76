"""
WebRTC connection establishment through the signaling relay.

The host asks the relay for a session id, opens the data channel up front
and sends an offer once the relay reports that a peer joined. The joiner
answers the offer. Both sides then trickle their candidates and a
``Complete`` marker; the relay is no longer needed after that.
"""
import asyncio
import datetime
from typing import List, Optional, Tuple

from aiortc import RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from wordcoop.core.config import ClientConfig
from wordcoop.core.exceptions import EstablishmentError, InvalidSessionIdError
from wordcoop.core.logging import LoggerMixin, debug_log
from wordcoop.relay import frames
from wordcoop.relay.frames import FrameKind, RelayFrame
from wordcoop.webrtc.data_channel import PeerLink
from wordcoop.webrtc.signaling import SignalClient


def local_candidates(sdp: str) -> List[Tuple[Optional[str], str]]:
    """Extract (mid, "candidate:...") pairs from a session description."""
    result: List[Tuple[Optional[str], str]] = []
    section_mid: Optional[str] = None
    section_candidates: List[str] = []

    def flush():
        result.extend((section_mid, candidate) for candidate in section_candidates)

    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("m="):
            flush()
            section_mid, section_candidates = None, []
        elif line.startswith("a=mid:"):
            section_mid = line[len("a=mid:"):]
        elif line.startswith("a=candidate:"):
            section_candidates.append(line[len("a="):])
    flush()
    return result


class PendingConnection(LoggerMixin):
    """One peer's side of an establishment in progress."""

    def __init__(self, config: ClientConfig, connection: RTCPeerConnection,
                 signal: SignalClient, session_id: str, hosting: bool):
        super().__init__()
        self.config = config
        self.connection = connection
        self.signal = signal
        self.session_id = session_id
        self.hosting = hosting

        self._ready: asyncio.Future = asyncio.get_running_loop().create_future()
        self._link: Optional[PeerLink] = None
        self._local_complete = False
        self._remote_complete = False
        self._signal_task: Optional[asyncio.Task] = None

        self._setup_peer_connection_handlers()

    @property
    def role(self) -> str:
        return "host" if self.hosting else "join"

    @property
    def done(self) -> bool:
        return self._ready.done()

    def start(self):
        self._signal_task = asyncio.create_task(self._run_signal_loop())

    async def wait_ready(self, timeout: Optional[float] = None) -> PeerLink:
        """Wait until the data channel is open and return it as a PeerLink."""
        return await asyncio.wait_for(asyncio.shield(self._ready), timeout)

    async def close(self):
        """Abandon the establishment, closing the relay socket and peer connection."""
        self._fail("cancelled")
        if self._signal_task is not None and not self._signal_task.done():
            self._signal_task.cancel()
            try:
                await self._signal_task
            except asyncio.CancelledError:
                pass
        await self.signal.close()
        await self.connection.close()

    def attach_channel(self, channel):
        """Wrap the data channel in a PeerLink and watch for the open transition."""
        self._link = PeerLink(channel, self.session_id, self.connection)

        @channel.on("open")
        def on_open():
            self._succeed()

        @channel.on("close")
        def on_close():
            self._fail("channel closed")

        if channel.readyState == "open":
            self._succeed()

    def _setup_peer_connection_handlers(self):
        pc = self.connection

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            debug_log(f"🔗 [Establishment] Connection state changed", {
                "session_id": self.session_id,
                "role": self.role,
                "connection_state": pc.connectionState,
                "timestamp": datetime.datetime.now().isoformat()
            }, logger=self.logger)

            if pc.connectionState == "failed":
                self._fail("ICE error")
            elif pc.connectionState == "closed":
                self._fail("connection closed")

        @pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            debug_log(f"🧊 [Establishment] ICE connection state changed", {
                "session_id": self.session_id,
                "ice_state": pc.iceConnectionState
            }, "DEBUG", self.logger)

        @pc.on("datachannel")
        def on_datachannel(channel):
            debug_log(f"🔗 [Establishment] Remote data channel announced", {
                "session_id": self.session_id,
                "channel_label": channel.label
            }, logger=self.logger)
            self.attach_channel(channel)

    def _succeed(self):
        if self._ready.done():
            return
        self.log_info("✅ [Establishment] Data channel open", {
            "session_id": self.session_id,
            "role": self.role
        })
        self._ready.set_result(self._link)

    def _fail(self, reason: str):
        if self._ready.done():
            return
        self.log_warning(f"Establishment failed: {reason}", {
            "session_id": self.session_id,
            "role": self.role
        })
        self._ready.set_exception(EstablishmentError(reason, {"session_id": self.session_id}))

    async def _run_signal_loop(self):
        try:
            async for frame in self.signal.iter_frames():
                await self._handle_frame(frame)
                if self._local_complete and self._remote_complete:
                    break
        except EstablishmentError as e:
            self._fail(e.reason)
        except Exception as e:
            self.log_error("Signaling failed", {
                "session_id": self.session_id,
                "error": str(e),
                "error_type": type(e).__name__
            })
            self._fail("signaling error")
        finally:
            await self.signal.close()

        if not (self._local_complete and self._remote_complete):
            self._fail("relay closed")

    async def _handle_frame(self, frame: RelayFrame):
        pc = self.connection

        if frame.kind == FrameKind.CLIENT_JOIN:
            if not self.hosting:
                self.log_warning("Ignoring ClientJoin on the joining side")
                return
            await pc.setLocalDescription(await pc.createOffer())
            await self._send_local_description()

        elif frame.kind == FrameKind.DESCRIPTION:
            description_type = "answer" if self.hosting else "offer"
            await pc.setRemoteDescription(RTCSessionDescription(sdp=frame.sdp, type=description_type))
            debug_log(f"📡 [Establishment] Remote description applied", {
                "session_id": self.session_id,
                "type": description_type,
                "sdp_length": len(frame.sdp)
            }, logger=self.logger)
            if not self.hosting:
                await pc.setLocalDescription(await pc.createAnswer())
                await self._send_local_description()

        elif frame.kind == FrameKind.ICE_CANDIDATE:
            await self._add_remote_candidate(*frame.candidate)

        elif frame.kind == FrameKind.COMPLETE:
            self._remote_complete = True
            self.log_debug("Remote side finished sending candidates", {"session_id": self.session_id})

    async def _send_local_description(self):
        # aiortc gathers every candidate inside setLocalDescription
        sdp = self.connection.localDescription.sdp
        await self.signal.send_description(sdp)
        candidates = local_candidates(sdp)
        for sdp_mid, candidate in candidates:
            await self.signal.send_candidate(sdp_mid, candidate)
        await self.signal.send_complete()
        self._local_complete = True

        debug_log(f"📡 [Establishment] Local description sent", {
            "session_id": self.session_id,
            "role": self.role,
            "candidates": len(candidates)
        }, logger=self.logger)

    async def _add_remote_candidate(self, sdp_mid: Optional[str], text: str):
        if text.startswith("candidate:"):
            text = text[len("candidate:"):]
        candidate = candidate_from_sdp(text)
        candidate.sdpMid = sdp_mid
        if sdp_mid is None:
            candidate.sdpMLineIndex = 0
        await self.connection.addIceCandidate(candidate)


class PeerConnector(LoggerMixin):
    """Creates hosting and joining establishments against one relay."""

    def __init__(self, config: Optional[ClientConfig] = None):
        super().__init__()
        self.config = config or ClientConfig()

    def validate_session_id(self, session_id: str):
        if not frames.is_valid_session_id(session_id, self.config.session_id_length):
            raise InvalidSessionIdError("Invalid session id", {"session_id": session_id})

    async def host(self) -> PendingConnection:
        """Open a new session. The returned connection carries the id to share."""
        signal = await SignalClient(self.config.signal_address, self.config.session_id_length).connect()
        try:
            session_id = await signal.request_session_id()
            await signal.join_session(session_id)
        except Exception:
            await signal.close()
            raise

        pc = RTCPeerConnection(configuration=self.config.rtc_config)
        pending = PendingConnection(self.config, pc, signal, session_id, hosting=True)
        pending.attach_channel(pc.createDataChannel(self.config.data_channel_label))
        pending.start()

        self.log_info("🏠 [Establishment] Hosting session", {"session_id": session_id})
        return pending

    async def join(self, session_id: str) -> PendingConnection:
        """Join a session shared by a host."""
        self.validate_session_id(session_id)

        signal = await SignalClient(self.config.signal_address, self.config.session_id_length).connect()
        try:
            await signal.join_session(session_id)
        except Exception:
            await signal.close()
            raise

        pc = RTCPeerConnection(configuration=self.config.rtc_config)
        pending = PendingConnection(self.config, pc, signal, session_id, hosting=False)
        pending.start()

        self.log_info("🚪 [Establishment] Joining session", {"session_id": session_id})
        return pending
