import asyncio
import socket

import pytest
from scapy.all import IP, UDP, Ether, Raw

import udp_transports
from pacing import ConfigurationError, SendError
from udp_transports import (
    BROADCAST_MAC,
    FrameTransport,
    SocketTransport,
    pick_interface,
    resolve_destination,
)


class FakeL2Socket:
    opened = []

    def __init__(self, iface=None):
        self.iface = iface
        self.frames = []
        self.closed = False
        self.fail_with = None
        FakeL2Socket.opened.append(self)

    def send(self, pkt):
        if self.fail_with is not None:
            raise self.fail_with
        self.frames.append(pkt)

    def close(self):
        self.closed = True


@pytest.fixture
def l2_sockets(monkeypatch):
    FakeL2Socket.opened = []
    monkeypatch.setattr(udp_transports.conf, "L2socket", FakeL2Socket)
    monkeypatch.setattr(udp_transports, "get_if_hwaddr", lambda iface: "00:11:22:33:44:55")
    monkeypatch.setattr(udp_transports, "get_if_list", lambda: ["lo", "h1-eth0"])
    return FakeL2Socket.opened


def test_resolve_ipv4_literal():
    family, sockaddr = resolve_destination("127.0.0.1", 9000)
    assert family == socket.AF_INET
    assert sockaddr == ("127.0.0.1", 9000)


def test_resolve_failure_is_configuration_error(monkeypatch):
    def fail(*args, **kwargs):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(socket, "getaddrinfo", fail)
    with pytest.raises(ConfigurationError, match="cannot resolve"):
        resolve_destination("no-such-host.invalid", 9000)


def test_resolve_rejects_bad_port():
    with pytest.raises(ConfigurationError):
        resolve_destination("127.0.0.1", 0)


def test_pick_interface(monkeypatch):
    monkeypatch.setattr(udp_transports, "get_if_list", lambda: ["lo", "h1-eth0"])
    assert pick_interface() == "h1-eth0"
    assert pick_interface("lo") == "lo"


def test_pick_interface_without_match(monkeypatch):
    monkeypatch.setattr(udp_transports, "get_if_list", lambda: ["lo"])
    with pytest.raises(ConfigurationError, match="Cannot find eth0 interface"):
        pick_interface()


def test_frame_transport_builds_udp_frames(l2_sockets):
    transport = FrameTransport.for_destination("h1-eth0", "10.0.0.2", 5001, sport=6000)
    asyncio.run(transport.send(b"\x00" * 64))
    asyncio.run(transport.send(b"\x01" * 64))

    assert len(l2_sockets) == 1
    sock = l2_sockets[0]
    assert sock.iface == "h1-eth0"
    assert len(sock.frames) == 2
    pkt = sock.frames[0]
    assert pkt[Ether].dst == BROADCAST_MAC
    assert pkt[Ether].src == "00:11:22:33:44:55"
    assert pkt[IP].dst == "10.0.0.2"
    assert pkt[UDP].sport == 6000
    assert pkt[UDP].dport == 5001
    assert bytes(pkt[Raw].load) == b"\x00" * 64
    assert bytes(sock.frames[1][Raw].load) == b"\x01" * 64


def test_frame_transport_close_releases_socket(l2_sockets):
    transport = FrameTransport.for_destination("h1-eth0", "10.0.0.2", 5001)
    assert not l2_sockets[0].closed
    transport.close()
    assert l2_sockets[0].closed


def test_frame_transport_auto_interface(l2_sockets, monkeypatch):
    monkeypatch.setattr(udp_transports, "get_if_list", lambda: ["lo", "eth0"])
    transport = FrameTransport.for_destination("auto", "10.0.0.2", 5001)
    assert transport.iface == "eth0"
    assert transport.template[UDP].sport == 5000


def test_frame_transport_unknown_interface(l2_sockets):
    with pytest.raises(ConfigurationError, match="Cannot find wlan9 interface"):
        FrameTransport.for_destination("wlan9", "10.0.0.2", 5001)
    assert l2_sockets == []


def test_frame_transport_open_failure(l2_sockets, monkeypatch):
    def refuse(iface=None):
        raise PermissionError(1, "Operation not permitted")

    monkeypatch.setattr(udp_transports.conf, "L2socket", refuse)
    with pytest.raises(ConfigurationError, match="cannot open interface h1-eth0"):
        FrameTransport.for_destination("h1-eth0", "10.0.0.2", 5001)


def test_frame_transport_send_error(l2_sockets):
    transport = FrameTransport("h1-eth0", "10.0.0.2", 5001)
    l2_sockets[0].fail_with = PermissionError(1, "Operation not permitted")

    with pytest.raises(SendError) as excinfo:
        asyncio.run(transport.send(b"\x01" * 32))
    assert isinstance(excinfo.value.__cause__, PermissionError)


class BrokenSocket:
    def __init__(self):
        self.closed = False

    def gettimeout(self):
        return 0.0

    def fileno(self):
        return -1

    def send(self, data):
        raise ConnectionRefusedError(111, "Connection refused")

    def close(self):
        self.closed = True


def test_socket_transport_wraps_os_errors():
    sock = BrokenSocket()
    transport = SocketTransport(sock)

    with pytest.raises(SendError, match="Connection refused") as excinfo:
        asyncio.run(transport.send(b"\x00" * 16))
    assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)

    transport.close()
    assert sock.closed


def test_socket_transport_reaches_peer():
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(2.0)
    port = receiver.getsockname()[1]

    transport = SocketTransport.connect("127.0.0.1", port)
    try:
        assert transport.peer == ("127.0.0.1", port)
        asyncio.run(transport.send(b"\x00" * 100))
        assert receiver.recv(65535) == b"\x00" * 100
    finally:
        transport.close()
        receiver.close()
