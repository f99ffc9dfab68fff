# SPDX-License-Identifier: GPL-2.0-only
# Calculo do intervalo de envio e validacao dos parametros do fluxo UDP
import math

FILLER_BYTE = 0x00
SENTINEL_BYTE = 0x01

# IPv4: 65535 - 20 (IP header) - 8 (UDP header)
MAX_DATAGRAM_SIZE = 65507

BITS_PER_MEGABIT = 1024 * 1024


class SenderError(Exception):
    pass


class ConfigurationError(SenderError, ValueError):
    pass


class SendError(SenderError):
    """A single datagram could not be handed to the network.

    ``sentinel`` is True when the failed datagram was the end-of-stream
    packet sent during shutdown.
    """

    def __init__(self, message, sentinel=False):
        super().__init__(message)
        self.sentinel = sentinel


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_buffer_size(buffer_size):
    if not isinstance(buffer_size, int) or isinstance(buffer_size, bool):
        raise ConfigurationError(f"buffer size must be an integer, got {buffer_size!r}")
    if buffer_size <= 0:
        raise ConfigurationError(f"buffer size must be positive, got {buffer_size}")
    if buffer_size > MAX_DATAGRAM_SIZE:
        raise ConfigurationError(
            f"buffer size {buffer_size} exceeds the maximum UDP payload ({MAX_DATAGRAM_SIZE})"
        )
    return buffer_size


def validate_bandwidth(bandwidth_mbps):
    if not _is_number(bandwidth_mbps) or not math.isfinite(bandwidth_mbps):
        raise ConfigurationError(f"bandwidth must be a finite number, got {bandwidth_mbps!r}")
    if bandwidth_mbps <= 0:
        raise ConfigurationError(f"bandwidth must be positive, got {bandwidth_mbps}")
    return float(bandwidth_mbps)


def validate_duration(duration):
    if not _is_number(duration) or not math.isfinite(duration):
        raise ConfigurationError(f"duration must be a finite number, got {duration!r}")
    if duration < 0:
        raise ConfigurationError(f"duration must not be negative, got {duration}")
    return float(duration)


def validate_port(port):
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigurationError(f"port must be an integer, got {port!r}")
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"port must be in 1-65535, got {port}")
    return port


def validate_host(host):
    if not isinstance(host, str) or not host.strip():
        raise ConfigurationError(f"host must be a non-empty string, got {host!r}")
    return host.strip()


def validate_interface(iface):
    if not isinstance(iface, str) or not iface.strip() or any(c.isspace() for c in iface.strip()):
        raise ConfigurationError(f"interface must be a non-empty name without spaces, got {iface!r}")
    return iface.strip()


def compute_interval(buffer_size, bandwidth_mbps):
    """Seconds between two sends so that one ``buffer_size`` packet per tick
    adds up to ``bandwidth_mbps`` (1 Mbit = 1024 * 1024 bits).
    """
    buffer_size = validate_buffer_size(buffer_size)
    bandwidth_mbps = validate_bandwidth(bandwidth_mbps)

    bytes_per_second = bandwidth_mbps * BITS_PER_MEGABIT / 8
    sends_per_second = bytes_per_second / buffer_size
    return 1.0 / sends_per_second


def filler_payload(buffer_size):
    return bytes([FILLER_BYTE]) * buffer_size


def sentinel_payload(buffer_size):
    return bytes([SENTINEL_BYTE]) * buffer_size


def megabits_per_second(num_bytes, elapsed):
    if elapsed <= 0:
        return 0.0
    return num_bytes * 8 / BITS_PER_MEGABIT / elapsed
