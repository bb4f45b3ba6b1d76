"""
Custom exception classes for Word Coop.
"""


class WordCoopError(Exception):
    """Base exception for Word Coop."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{super().__str__()} - {self.details}"
        return super().__str__()


class EstablishmentError(WordCoopError):
    """Raised when a peer connection fails before its data channel opens."""

    def __init__(self, reason: str, details: dict = None):
        super().__init__(reason, details)
        self.reason = reason


class InvalidSessionIdError(WordCoopError):
    """Raised when a session id does not match the relay's id format."""
    pass


class ProtocolViolation(WordCoopError):
    """Raised when a peer message breaks the negotiated protocol. Always fatal to the connection."""
    pass


class SessionError(WordCoopError):
    """Raised by the relay session registry for relay-local faults."""
    pass
