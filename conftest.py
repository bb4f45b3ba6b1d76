"""
Shared fixtures: an in-memory data channel pair and a minimal word game.
"""
from collections import defaultdict

import pytest
from aiohttp.test_utils import TestClient, TestServer

from wordcoop.webrtc.data_channel import PeerLink
from wordcoop.webrtc.protocol import PeerMessageProtocol


class FakeChannel:
    """Stands in for an RTCDataChannel. Messages are delivered to the peer synchronously."""

    def __init__(self, label: str = "WordleGame"):
        self.label = label
        self.readyState = "open"
        self.peer = None
        self.sent = []
        self._listeners = defaultdict(list)

    def on(self, event, callback=None):
        if callback is None:
            def decorator(func):
                self._listeners[event].append(func)
                return func
            return decorator
        self._listeners[event].append(callback)
        return callback

    def emit(self, event, *args):
        for callback in list(self._listeners[event]):
            callback(*args)

    def send(self, data):
        if self.readyState != "open":
            raise ConnectionError("channel is closed")
        self.sent.append(data)
        if self.peer is not None and self.peer.readyState == "open":
            self.peer.emit("message", data)

    def close(self):
        if self.readyState == "closed":
            return
        self.readyState = "closed"
        self.emit("close")
        if self.peer is not None:
            self.peer.close()


class FakeGame:
    """Just enough of a word game: fixed-length guesses against a target word."""

    def __init__(self, target: str = "crane", rows: int = 6):
        self.target = target
        self.rows = rows
        self.current = ""
        self.guesses = []
        self.gave_up = False
        self.restarts = []

    def finished(self):
        return self.is_won() or self.is_lost()

    def apply_character_input(self, char):
        if self.finished() or len(self.current) >= len(self.target):
            return False
        self.current += char
        return True

    def apply_backspace(self):
        if self.finished() or not self.current:
            return False
        self.current = self.current[:-1]
        return True

    def apply_word_submit(self):
        if self.finished() or len(self.current) != len(self.target):
            return False
        self.guesses.append(self.current)
        self.current = ""
        return True

    def restart(self, word):
        self.target = word
        self.current = ""
        self.guesses = []
        self.gave_up = False
        self.restarts.append(word)

    def give_up(self):
        self.gave_up = True

    def is_won(self):
        return bool(self.guesses) and self.guesses[-1] == self.target

    def is_lost(self):
        return self.gave_up or (len(self.guesses) >= self.rows and not self.is_won())


@pytest.fixture
def channel_pair():
    a, b = FakeChannel(), FakeChannel()
    a.peer, b.peer = b, a
    return a, b


@pytest.fixture
def link_pair(channel_pair):
    a, b = channel_pair
    return PeerLink(a, "ABCDE"), PeerLink(b, "ABCDE")


@pytest.fixture
def protocol_pair(link_pair):
    a, b = link_pair
    return PeerMessageProtocol(a), PeerMessageProtocol(b)


@pytest.fixture
def game_pair():
    return FakeGame(), FakeGame()


@pytest.fixture
async def make_client():
    """Start aiohttp applications on a local port; every client is closed at teardown."""
    clients = []

    async def factory(app):
        client = TestClient(TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.close()


def ws_address(client) -> str:
    return str(client.make_url("/")).replace("http://", "ws://", 1)
