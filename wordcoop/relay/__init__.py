"""
Relay module for Word Coop.
Pairs clients into sessions and forwards their connection handshake.
"""

from .frames import FrameKind, RelayFrame, parse_frame
from .sessions import Session, SessionRegistry
from .server import RelayServer, create_app

__all__ = [
    'FrameKind',
    'RelayFrame',
    'parse_frame',
    'Session',
    'SessionRegistry',
    'RelayServer',
    'create_app'
]
