"""
Core module for Word Coop.
Contains configuration, logging, and common exceptions.
"""

from .config import ClientConfig, IceServer, RelayConfig
from .logging import LoggerMixin, setup_logging, debug_log
from .exceptions import (
    WordCoopError,
    EstablishmentError,
    InvalidSessionIdError,
    ProtocolViolation,
    SessionError,
)

__all__ = [
    'ClientConfig',
    'IceServer',
    'RelayConfig',
    'LoggerMixin',
    'setup_logging',
    'debug_log',
    'WordCoopError',
    'EstablishmentError',
    'InvalidSessionIdError',
    'ProtocolViolation',
    'SessionError'
]
