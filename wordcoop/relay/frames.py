"""
Relay wire frames.

Frames are text messages whose first line names the kind; remaining lines
carry the fields. A description body may itself span several lines and is
kept verbatim.
"""
import re
import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


SESSION_ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase


class FrameKind(str, Enum):
    REQUEST_SESSION_ID = "RequestSessionId"
    JOIN_SESSION = "JoinSession"
    CLIENT_JOIN = "ClientJoin"
    DESCRIPTION = "Description"
    ICE_CANDIDATE = "IceCandidate"
    COMPLETE = "Complete"


RELAYED_KINDS = frozenset({FrameKind.DESCRIPTION, FrameKind.ICE_CANDIDATE, FrameKind.COMPLETE})


@dataclass
class RelayFrame:
    kind: FrameKind
    body: str = ""

    @property
    def session_id(self) -> str:
        return self.body.strip()

    @property
    def sdp(self) -> str:
        return self.body

    @property
    def candidate(self) -> Tuple[Optional[str], str]:
        """(sdp_mid, candidate) of an IceCandidate frame."""
        mid, _, candidate = self.body.partition("\n")
        return (mid or None), candidate.strip()

    def encode(self) -> str:
        if self.body:
            return f"{self.kind.value}\n{self.body}"
        return self.kind.value


def parse_frame(text: str) -> RelayFrame:
    """Parse a relay frame, raising ValueError on an unknown kind."""
    head, _, body = text.partition("\n")
    kind = FrameKind(head.strip())
    if kind == FrameKind.ICE_CANDIDATE and "\n" not in body:
        raise ValueError("IceCandidate frame needs a mid line and a candidate line")
    if kind == FrameKind.JOIN_SESSION and not body.strip():
        raise ValueError("JoinSession frame needs a session id")
    return RelayFrame(kind, body)


def request_session_id() -> str:
    return FrameKind.REQUEST_SESSION_ID.value


def join_session(session_id: str) -> str:
    return RelayFrame(FrameKind.JOIN_SESSION, session_id).encode()


def client_join() -> str:
    return FrameKind.CLIENT_JOIN.value


def description(sdp: str) -> str:
    return RelayFrame(FrameKind.DESCRIPTION, sdp).encode()


def ice_candidate(sdp_mid: Optional[str], candidate: str) -> str:
    return RelayFrame(FrameKind.ICE_CANDIDATE, f"{sdp_mid or ''}\n{candidate}").encode()


def complete() -> str:
    return FrameKind.COMPLETE.value


def generate_session_id(length: int) -> str:
    """Map cryptographically random bytes onto the 52-letter alphabet."""
    return "".join(SESSION_ID_ALPHABET[byte % len(SESSION_ID_ALPHABET)]
                   for byte in secrets.token_bytes(length))


def is_valid_session_id(session_id: str, length: int) -> bool:
    return bool(re.fullmatch(f"[A-Za-z]{{{length}}}", session_id or ""))
