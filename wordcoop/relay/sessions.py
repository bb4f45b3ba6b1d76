"""
Relay session registry.

Pairs at most two connections per session, relays handshake frames between
them and expires sessions past their TTL. Connections are duck-typed: any
object with ``send_str(text)`` and ``close()`` coroutines works, which is
what aiohttp's ``WebSocketResponse`` provides.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from wordcoop.core.config import RelayConfig
from wordcoop.core.exceptions import SessionError
from wordcoop.core.logging import LoggerMixin
from wordcoop.relay import frames
from wordcoop.relay.frames import FrameKind, RelayFrame

MAX_MEMBERS = 2


@dataclass
class Member:
    connection: Any
    complete: bool = False


@dataclass
class Session:
    session_id: str
    created_at: float
    members: List[Member] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def find(self, connection) -> Optional[Member]:
        for member in self.members:
            if member.connection is connection:
                return member
        return None

    def others(self, connection) -> List[Any]:
        return [m.connection for m in self.members if m.connection is not connection]

    @property
    def is_full(self) -> bool:
        return len(self.members) >= MAX_MEMBERS

    @property
    def all_complete(self) -> bool:
        return self.is_full and all(m.complete for m in self.members)


class SessionRegistry(LoggerMixin):
    """Owns every open session; all relay state goes through this API."""

    def __init__(self, config: RelayConfig,
                 id_factory: Optional[Callable[[int], str]] = None,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self.config = config
        self.sessions: Dict[str, Session] = {}
        self._memberships: Dict[int, str] = {}
        self._id_factory = id_factory or frames.generate_session_id
        self._clock = clock

    def request_session_id(self) -> str:
        """Create an empty session under a fresh id and return the id."""
        session_id = self._id_factory(self.config.session_id_length)
        while session_id in self.sessions:
            self.log_warning("Session id collision, regenerating", {"session_id": session_id})
            session_id = self._id_factory(self.config.session_id_length)

        self.sessions[session_id] = Session(session_id, self._clock())
        self.log_info("🆕 [Relay] Session created", {
            "session_id": session_id,
            "open_sessions": len(self.sessions)
        })
        return session_id

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def session_of(self, connection) -> Optional[Session]:
        session_id = self._memberships.get(id(connection))
        if session_id is None:
            return None
        return self.sessions.get(session_id)

    async def join(self, connection, session_id: str) -> Session:
        """Add a connection to a session, then drop it from any session it was in.

        A rejected join leaves the connection's current membership untouched.
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionError("Session does not exist", {"session_id": session_id})

        async with session.lock:
            if self.sessions.get(session_id) is not session:
                raise SessionError("Session expired while joining", {"session_id": session_id})
            if session.is_full and session.find(connection) is None:
                raise SessionError("Session is full", {
                    "session_id": session_id,
                    "members": len(session.members)
                })

            previous = self.session_of(connection)
            stale = session.find(connection)
            if stale is not None:
                session.members.remove(stale)
            session.members.append(Member(connection))
            self._memberships[id(connection)] = session_id
            self.log_info("👥 [Relay] Client joined session", {
                "session_id": session_id,
                "members": len(session.members)
            })

            for other in session.others(connection):
                await self._send(other, frames.client_join())

        if previous is not None and previous is not session:
            await self._remove_member(previous, connection)
        return session

    async def relay(self, connection, frame: RelayFrame, raw: str) -> int:
        """Forward a handshake frame verbatim to the rest of the sender's session."""
        session = self.session_of(connection)
        if session is None:
            raise SessionError("Connection is not in a session", {"kind": frame.kind.value})

        to_close: List[Any] = []
        forwarded = 0
        async with session.lock:
            if self.sessions.get(session.session_id) is not session:
                raise SessionError("Session closed before relaying", {"session_id": session.session_id})

            for other in session.others(connection):
                if await self._send(other, raw):
                    forwarded += 1

            if frame.kind == FrameKind.COMPLETE:
                member = session.find(connection)
                if member is not None:
                    member.complete = True
                if session.all_complete:
                    self.log_info("🤝 [Relay] Handshake complete, closing session", {
                        "session_id": session.session_id
                    })
                    to_close = self._remove_session(session)

        await self._close_all(to_close)
        return forwarded

    async def leave(self, connection) -> None:
        """Remove a connection from its session, deleting the session once empty."""
        session = self.session_of(connection)
        self._memberships.pop(id(connection), None)
        if session is not None:
            await self._remove_member(session, connection)

    async def _remove_member(self, session: Session, connection) -> None:
        async with session.lock:
            member = session.find(connection)
            if member is not None:
                session.members.remove(member)

            if not session.members and self.sessions.get(session.session_id) is session:
                del self.sessions[session.session_id]
                self.log_info("🗑️ [Relay] Empty session removed", {"session_id": session.session_id})

    async def sweep(self, now: Optional[float] = None) -> List[str]:
        """Force-close every session older than the configured TTL."""
        now = self._clock() if now is None else now
        expired: List[str] = []
        to_close: List[Any] = []

        for session in list(self.sessions.values()):
            if now - session.created_at <= self.config.session_ttl:
                continue
            async with session.lock:
                if self.sessions.get(session.session_id) is not session:
                    continue
                to_close.extend(self._remove_session(session))
                expired.append(session.session_id)

        if expired:
            self.log_info("⏰ [Relay] Expired sessions swept", {
                "expired": expired,
                "open_sessions": len(self.sessions)
            })
        await self._close_all(to_close)
        return expired

    async def close_all(self) -> None:
        """Tear down every session, closing its members."""
        to_close: List[Any] = []
        for session in list(self.sessions.values()):
            async with session.lock:
                if self.sessions.get(session.session_id) is session:
                    to_close.extend(self._remove_session(session))
        await self._close_all(to_close)

    def get_status(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "open_sessions": len(self.sessions),
            "sessions": {
                session_id: {
                    "members": len(session.members),
                    "complete": sum(1 for m in session.members if m.complete),
                    "age_ms": int((now - session.created_at) * 1000)
                }
                for session_id, session in self.sessions.items()
            }
        }

    def _remove_session(self, session: Session) -> List[Any]:
        # Caller holds session.lock
        self.sessions.pop(session.session_id, None)
        connections = [m.connection for m in session.members]
        for connection in connections:
            self._memberships.pop(id(connection), None)
        session.members.clear()
        return connections

    async def _send(self, connection, text: str) -> bool:
        try:
            await connection.send_str(text)
            return True
        except (ConnectionError, RuntimeError) as e:
            self.log_warning("Failed to send to session member", {
                "error": str(e),
                "error_type": type(e).__name__
            })
            return False

    async def _close_all(self, connections: List[Any]) -> None:
        for connection in connections:
            try:
                await connection.close()
            except (ConnectionError, RuntimeError) as e:
                self.log_warning("Failed to close session member", {
                    "error": str(e),
                    "error_type": type(e).__name__
                })
