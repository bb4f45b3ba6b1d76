"""
Tests for the relay client and the establishment flow up to the data channel.
"""
import asyncio

import pytest

from conftest import ws_address
from wordcoop.core.config import ClientConfig, IceServer, RelayConfig
from wordcoop.core.exceptions import EstablishmentError, InvalidSessionIdError
from wordcoop.relay.frames import FrameKind
from wordcoop.relay.server import RelayServer, create_app
from wordcoop.relay.sessions import SessionRegistry
from wordcoop.webrtc.establishment import PeerConnector, local_candidates
from wordcoop.webrtc.protocol import PeerMessageProtocol
from wordcoop.webrtc.signaling import SignalClient, fetch_ice_servers, ice_servers_url

SESSION_ID = "XYZab"

SAMPLE_SDP = "\r\n".join([
    "v=0",
    "o=- 3912345678 3912345678 IN IP4 0.0.0.0",
    "s=-",
    "t=0 0",
    "a=group:BUNDLE 0",
    "m=application 50000 DTLS/SCTP 5000",
    "c=IN IP4 192.0.2.10",
    "a=mid:0",
    "a=sctpmap:5000 webrtc-datachannel 65535",
    "a=candidate:0d1f5d7e 1 udp 2130706431 192.0.2.10 50000 typ host",
    "a=candidate:a8f2c431 1 udp 1694498815 198.51.100.7 50000 typ srflx raddr 192.0.2.10 rport 50000",
    "a=end-of-candidates",
    "",
])


def relay_app(session_id=SESSION_ID, **config):
    relay_config = RelayConfig(ice_servers=[IceServer(urls=["stun:stun.example.org:3478"])], **config)
    registry = SessionRegistry(relay_config, id_factory=lambda length: session_id)
    return create_app(server=RelayServer(relay_config, registry))


@pytest.fixture
async def relay(make_client):
    return await make_client(relay_app())


async def next_frame(frames):
    return await asyncio.wait_for(frames.__anext__(), 5)


async def wait_joined(client, session_id, count=1):
    registry = client.server.app['relay'].registry
    for _ in range(200):
        session = registry.get_session(session_id)
        if session is not None and len(session.members) == count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"session {session_id} never reached {count} members")


async def test_signal_clients_pair_through_relay(relay):
    address = ws_address(relay)
    host = await SignalClient(address, 5).connect()
    guest = await SignalClient(address, 5).connect()
    host_frames = host.iter_frames()
    guest_frames = guest.iter_frames()

    session_id = await host.request_session_id()
    assert session_id == SESSION_ID
    await host.join_session(session_id)
    await wait_joined(relay, session_id)
    await guest.join_session(session_id)

    frame = await next_frame(host_frames)
    assert frame.kind == FrameKind.CLIENT_JOIN

    await host.send_description(SAMPLE_SDP)
    frame = await next_frame(guest_frames)
    assert frame.kind == FrameKind.DESCRIPTION
    assert frame.sdp == SAMPLE_SDP

    await guest.send_candidate("0", "candidate:0d1f5d7e 1 udp 2130706431 192.0.2.20 50001 typ host")
    frame = await next_frame(host_frames)
    assert frame.kind == FrameKind.ICE_CANDIDATE
    assert frame.candidate == ("0", "candidate:0d1f5d7e 1 udp 2130706431 192.0.2.20 50001 typ host")

    await host.send_complete()
    assert (await next_frame(guest_frames)).kind == FrameKind.COMPLETE
    await guest.send_complete()
    assert (await next_frame(host_frames)).kind == FrameKind.COMPLETE

    with pytest.raises(StopAsyncIteration):
        await next_frame(host_frames)

    await host.close()
    await guest.close()


async def test_invalid_session_id_from_relay_rejected(make_client):
    client = await make_client(relay_app(session_id="ab1"))
    signal = await SignalClient(ws_address(client), 5).connect()
    with pytest.raises(InvalidSessionIdError):
        await signal.request_session_id()
    await signal.close()


async def test_unreachable_relay():
    with pytest.raises(EstablishmentError) as excinfo:
        await SignalClient("ws://127.0.0.1:9", 5).connect()
    assert excinfo.value.reason == "relay unreachable"


async def test_join_validates_id_before_connecting():
    connector = PeerConnector(ClientConfig(signal_address="ws://127.0.0.1:9"))
    for bad in ("", "abc", "abcdef", "ab1de", "ab de"):
        with pytest.raises(InvalidSessionIdError):
            await connector.join(bad)


async def test_fetch_ice_servers(relay):
    servers = await fetch_ice_servers(ws_address(relay))
    assert servers == [IceServer(urls=["stun:stun.example.org:3478"])]

    config = ClientConfig().with_ice_servers(servers)
    assert [server.urls for server in config.rtc_config.iceServers] == [["stun:stun.example.org:3478"]]


async def test_fetch_ice_servers_unavailable():
    with pytest.raises(EstablishmentError):
        await fetch_ice_servers("ws://127.0.0.1:9", timeout=1.0)


def test_ice_servers_url():
    assert ice_servers_url("ws://localhost:25566") == "http://localhost:25566/ice-servers"
    assert ice_servers_url("wss://relay.example.org/") == "https://relay.example.org/ice-servers"


def test_local_candidates_carry_their_mid():
    assert local_candidates(SAMPLE_SDP) == [
        ("0", "candidate:0d1f5d7e 1 udp 2130706431 192.0.2.10 50000 typ host"),
        ("0", "candidate:a8f2c431 1 udp 1694498815 198.51.100.7 50000 typ srflx raddr 192.0.2.10 rport 50000"),
    ]


def test_local_candidates_empty_sdp():
    assert local_candidates("v=0\r\ns=-\r\n") == []


async def test_host_sends_offer_when_peer_joins(relay):
    """The hosting side answers ClientJoin with its description, candidates and Complete."""
    connector = PeerConnector(ClientConfig(signal_address=ws_address(relay), ice_servers=[]))
    pending = await connector.host()
    assert pending.session_id == SESSION_ID
    await wait_joined(relay, SESSION_ID)

    guest = await relay.ws_connect("/")
    await guest.send_str(f"JoinSession\n{SESSION_ID}")

    received = []
    while not received or received[-1] != "Complete":
        received.append(await asyncio.wait_for(guest.receive_str(), 10))

    assert received[0].startswith("Description\n")
    assert "m=application" in received[0]
    assert all(frame.startswith("IceCandidate\n") for frame in received[1:-1])

    await pending.close()
    with pytest.raises(EstablishmentError):
        await pending.wait_ready(1)


async def test_relay_closing_early_fails_establishment(relay):
    connector = PeerConnector(ClientConfig(signal_address=ws_address(relay), ice_servers=[]))
    pending = await connector.host()
    await wait_joined(relay, SESSION_ID)

    await relay.server.app['relay'].registry.close_all()

    with pytest.raises(EstablishmentError) as excinfo:
        await pending.wait_ready(5)
    assert excinfo.value.reason == "relay closed"
    await pending.close()


async def connect_peers(relay):
    config = ClientConfig(signal_address=ws_address(relay), ice_servers=[])
    host = await PeerConnector(config).host()
    await wait_joined(relay, SESSION_ID)
    guest = await PeerConnector(config).join(host.session_id)
    return await asyncio.gather(host.wait_ready(15), guest.wait_ready(15))


async def wait_session_closed(relay, session_id):
    registry = relay.server.app['relay'].registry
    for _ in range(200):
        if registry.get_session(session_id) is None:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"session {session_id} still open")


async def test_host_and_join_open_a_data_channel(relay):
    host_link, guest_link = await connect_peers(relay)
    try:
        assert host_link.is_open and guest_link.is_open
        assert host_link.session_id == guest_link.session_id == SESSION_ID
        assert guest_link.label == "WordleGame"

        received = asyncio.get_running_loop().create_future()
        guest_link.add_message_handler(received.set_result)
        assert host_link.send("hello")
        assert await asyncio.wait_for(received, 5) == "hello"

        await wait_session_closed(relay, SESSION_ID)
    finally:
        await host_link.aclose()
        await guest_link.aclose()


async def test_protocol_attached_at_different_times_completes(relay):
    host_link, guest_link = await connect_peers(relay)
    try:
        host = PeerMessageProtocol(host_link)
        host.register_two_way("PushChar", "", lambda payload: None)
        host.finish_local()
        host.send("PushChar", "q")

        await asyncio.sleep(0.3)

        received = asyncio.get_running_loop().create_future()
        guest = PeerMessageProtocol(guest_link)
        guest.register_two_way("PushChar", "", received.set_result)
        guest.finish_local()

        assert await asyncio.wait_for(received, 5) == "q"
        assert host.ready and guest.ready
        assert not host.closed and not guest.closed
    finally:
        await host_link.aclose()
        await guest_link.aclose()
