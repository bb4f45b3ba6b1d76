"""
Configuration management for the Word Coop relay and clients.
"""
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from aiortc import RTCConfiguration, RTCIceServer


DEFAULT_STUN_URL = "stun:stun.l.google.com:19302"


@dataclass
class IceServer:
    """An ICE server descriptor handed to clients without interpretation."""

    urls: List[str]
    username: Optional[str] = None
    credential: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IceServer":
        urls = data["urls"]
        if isinstance(urls, str):
            urls = [urls]
        return cls(urls=list(urls), username=data.get("username"), credential=data.get("credential"))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"urls": list(self.urls)}
        if self.username is not None:
            result["username"] = self.username
        if self.credential is not None:
            result["credential"] = self.credential
        return result

    def to_rtc(self) -> RTCIceServer:
        return RTCIceServer(urls=list(self.urls), username=self.username, credential=self.credential)


def parse_ice_servers(raw: str) -> List[IceServer]:
    """Parse a JSON list of ICE server descriptors."""
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("ICE server configuration must be a JSON list")
    return [IceServer.from_dict(entry) for entry in data]


def _default_ice_servers() -> List[IceServer]:
    return [IceServer(urls=[DEFAULT_STUN_URL])]


@dataclass
class RelayConfig:
    """Signaling relay settings. Environment variables override field values."""

    host: str = "0.0.0.0"
    port: int = 25566

    # Sessions
    session_ttl_ms: int = 300_000
    session_id_length: int = 5
    sweep_interval_ms: int = 1000

    # Handed to clients at /ice-servers
    ice_servers: List[IceServer] = field(default_factory=_default_ice_servers)

    def __post_init__(self):
        """Initialize configuration from environment variables."""
        self.host = os.environ.get('WORDCOOP_HOST', self.host)
        self.port = int(os.environ.get('WORDCOOP_PORT', self.port))
        self.session_ttl_ms = int(os.environ.get('WORDCOOP_SESSION_TTL_MS', self.session_ttl_ms))
        self.session_id_length = int(os.environ.get('WORDCOOP_SESSION_ID_LENGTH', self.session_id_length))
        self.sweep_interval_ms = int(os.environ.get('WORDCOOP_SWEEP_INTERVAL_MS', self.sweep_interval_ms))

        raw_ice = os.environ.get('WORDCOOP_ICE_SERVERS')
        if raw_ice:
            self.ice_servers = parse_ice_servers(raw_ice)

        if self.session_id_length < 1:
            raise ValueError("session_id_length must be positive")
        if self.session_ttl_ms <= 0 or self.sweep_interval_ms <= 0:
            raise ValueError("session TTL and sweep interval must be positive")

    @property
    def session_ttl(self) -> float:
        """Session TTL in seconds."""
        return self.session_ttl_ms / 1000.0

    @property
    def sweep_interval(self) -> float:
        """Sweep interval in seconds."""
        return self.sweep_interval_ms / 1000.0

    def __str__(self) -> str:
        return (f"RelayConfig(host={self.host}, port={self.port}, session_ttl_ms={self.session_ttl_ms}, "
                f"session_id_length={self.session_id_length}, ice_servers={len(self.ice_servers)})")


@dataclass
class ClientConfig:
    """Client-side connection settings."""

    signal_address: str = "ws://localhost:25566"
    session_id_length: int = 5
    data_channel_label: str = "WordleGame"
    ice_servers: List[IceServer] = field(default_factory=_default_ice_servers)

    # WebRTC configuration
    rtc_config: Optional[RTCConfiguration] = None

    def __post_init__(self):
        """Initialize configuration from environment variables."""
        self.signal_address = os.environ.get('WORDCOOP_SIGNAL_ADDRESS', self.signal_address)
        self.session_id_length = int(os.environ.get('WORDCOOP_SESSION_ID_LENGTH', self.session_id_length))

        raw_ice = os.environ.get('WORDCOOP_ICE_SERVERS')
        if raw_ice:
            self.ice_servers = parse_ice_servers(raw_ice)

        self._build_rtc_config()

    def _build_rtc_config(self):
        """Build WebRTC configuration from the ICE server descriptors."""
        self.rtc_config = RTCConfiguration(iceServers=[server.to_rtc() for server in self.ice_servers])

    def with_ice_servers(self, ice_servers: List[IceServer]) -> "ClientConfig":
        """Replace the ICE servers, e.g. with the list fetched from the relay."""
        self.ice_servers = list(ice_servers)
        self._build_rtc_config()
        return self

    def __str__(self) -> str:
        return f"ClientConfig(signal_address={self.signal_address}, ice_servers={len(self.ice_servers)})"
