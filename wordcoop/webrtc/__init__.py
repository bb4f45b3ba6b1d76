"""
WebRTC side of Word Coop.
Handles connection establishment, the peer data channel and the typed message protocol.
"""

from .data_channel import PeerLink
from .establishment import PeerConnector, PendingConnection, local_candidates
from .protocol import CallbackHandler, MessageHandler, PeerMessageProtocol, SendResult
from .schema import FieldKind, MessageSchema
from .signaling import SignalClient, fetch_ice_servers

__all__ = [
    'PeerLink',
    'PeerConnector',
    'PendingConnection',
    'local_candidates',
    'CallbackHandler',
    'MessageHandler',
    'PeerMessageProtocol',
    'SendResult',
    'FieldKind',
    'MessageSchema',
    'SignalClient',
    'fetch_ice_servers'
]
