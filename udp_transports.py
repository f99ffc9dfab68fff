# SPDX-License-Identifier: GPL-2.0-only
# Transportes usados pela sessao: socket UDP conectado ou quadros scapy na interface
import asyncio
import logging
import socket

from scapy.all import IP, UDP, Ether, Raw, conf, get_if_hwaddr, get_if_list
from scapy.error import Scapy_Exception

from pacing import ConfigurationError, SendError, validate_host, validate_interface, validate_port

logger = logging.getLogger(__name__)

BROADCAST_MAC = 'ff:ff:ff:ff:ff:ff'


def resolve_destination(host, port, family=socket.AF_UNSPEC):
    """Return ``(family, sockaddr)`` for the first datagram address of host:port."""
    host = validate_host(host)
    port = validate_port(port)
    try:
        infos = socket.getaddrinfo(host, port, family=family, type=socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise ConfigurationError(f"cannot resolve {host}: {exc}") from exc
    if not infos:
        raise ConfigurationError(f"no address found for {host}")
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


def pick_interface(preferred="eth0"):
    for name in get_if_list():
        if preferred in name:
            return name
    raise ConfigurationError(f"Cannot find {preferred} interface")


class SocketTransport:
    """Connected UDP socket driven by the running asyncio loop."""

    def __init__(self, sock):
        self._sock = sock

    @classmethod
    def connect(cls, host, port):
        family, sockaddr = resolve_destination(host, port)
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.setblocking(False)
            sock.connect(sockaddr)
        except OSError as exc:
            sock.close()
            raise ConfigurationError(f"cannot reach {host}:{port}: {exc}") from exc
        logger.debug("UDP socket connected to %s", sockaddr[:2])
        return cls(sock)

    @property
    def peer(self):
        return self._sock.getpeername()

    async def send(self, data):
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendall(self._sock, data)
        except OSError as exc:
            raise SendError(str(exc)) from exc

    def close(self):
        self._sock.close()


class FrameTransport:
    """Injects Ether/IP/UDP frames on an interface through one scapy L2 socket."""

    def __init__(self, iface, dst, dport, sport=5000):
        self.iface = iface
        self.template = (
            Ether(src=get_if_hwaddr(iface), dst=BROADCAST_MAC)
            / IP(dst=dst)
            / UDP(sport=sport, dport=dport)
        )
        try:
            self._sock = conf.L2socket(iface=iface)
        except (OSError, Scapy_Exception) as exc:
            raise ConfigurationError(f"cannot open interface {iface}: {exc}") from exc

    @classmethod
    def for_destination(cls, iface, host, port, sport=5000):
        if iface == "auto":
            iface = pick_interface()
        iface = validate_interface(iface)
        if iface not in get_if_list():
            raise ConfigurationError(f"Cannot find {iface} interface")
        _, sockaddr = resolve_destination(host, port, family=socket.AF_INET)
        validate_port(sport)
        return cls(iface, sockaddr[0], port, sport=sport)

    def build(self, data):
        return self.template / Raw(load=data)

    async def send(self, data):
        # a single frame write on an already open socket; blocks the loop only briefly
        try:
            self._sock.send(self.build(data))
        except (OSError, Scapy_Exception) as exc:
            raise SendError(str(exc)) from exc

    def close(self):
        self._sock.close()
