# SPDX-License-Identifier: GPL-2.0-only
# Sessao de envio UDP com taxa controlada, duracao fixa e pacote sentinela final
import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pacing import (
    SendError,
    compute_interval,
    filler_payload,
    megabits_per_second,
    sentinel_payload,
    validate_duration,
    validate_host,
    validate_interface,
    validate_port,
)
from udp_transports import FrameTransport, SocketTransport

logger = logging.getLogger(__name__)


@dataclass
class SenderConfig:
    host: str
    port: int = 5001
    buffer_size: int = 2048
    duration: float = 10.0
    bandwidth_mbps: float = 10.0
    iface: Optional[str] = None
    sport: int = 5000

    def validate(self):
        validate_host(self.host)
        validate_port(self.port)
        validate_duration(self.duration)
        compute_interval(self.buffer_size, self.bandwidth_mbps)
        if self.iface is not None:
            validate_interface(self.iface)
            validate_port(self.sport)
        return self

    @property
    def interval(self):
        return compute_interval(self.buffer_size, self.bandwidth_mbps)


@dataclass
class SessionResult:
    packets_sent: int
    bytes_sent: int
    sentinel_sent: bool
    elapsed: float
    interval: float
    errors: List[SendError] = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors

    @property
    def achieved_mbps(self):
        return megabits_per_second(self.bytes_sent, self.elapsed)


class SenderSession:
    """One paced UDP stream, from ``open()`` to the sentinel packet.

    The periodic send loop and the duration deadline are scheduled on the
    running asyncio loop and can be cancelled independently: a send error
    only ends the loop, the deadline still triggers ``stop()`` on time.
    """

    def __init__(self, buffer_size, duration, bandwidth_mbps, transport_factory=None,
                 progress_every=1000):
        self.interval = compute_interval(buffer_size, bandwidth_mbps)
        self.buffer_size = buffer_size
        self.duration = validate_duration(duration)
        self.bandwidth_mbps = float(bandwidth_mbps)
        self.progress_every = progress_every
        self._transport_factory = transport_factory or SocketTransport.connect

        self.host = None
        self.port = None
        self._transport = None
        self._send_task = None
        self._deadline = None
        self._stop_task = None
        self._finished = None
        self._started = False
        self._stopped = False

        self.packets_sent = 0
        self.bytes_sent = 0
        self.sentinel_sent = False
        self.errors = []
        self._started_at = None
        self._stopped_at = None

    @property
    def is_open(self):
        return self._transport is not None and not self._stopped

    @property
    def stopped(self):
        return self._stopped

    def open(self, host, port):
        if self._transport is not None or self._stopped:
            raise RuntimeError("session already opened")
        host = validate_host(host)
        port = validate_port(port)
        self._transport = self._transport_factory(host, port)
        self.host, self.port = host, port
        logger.info("Session opened towards %s:%d (interval %.6f s)", host, port, self.interval)

    async def run(self):
        if self._transport is None:
            raise RuntimeError("session is not open")
        if self._started or self._stopped:
            raise RuntimeError("session already running or stopped")
        self._started = True

        loop = asyncio.get_running_loop()
        self._finished = asyncio.Event()
        self._started_at = loop.time()
        self._send_task = loop.create_task(self._send_loop())
        self._deadline = loop.call_later(self.duration, self._on_deadline)

        try:
            await self._finished.wait()
        except asyncio.CancelledError:
            await self.stop()
            raise

        if self._stop_task is not None:
            await asyncio.wait({self._stop_task})
            if not self._stop_task.cancelled() and self._stop_task.exception() is not None:
                raise self._stop_task.exception()
        return self.result()

    def _on_deadline(self):
        self._deadline = None
        self._stop_task = asyncio.ensure_future(self.stop())

    async def _send_loop(self):
        loop = asyncio.get_running_loop()
        payload = filler_payload(self.buffer_size)
        next_tick = loop.time()

        while True:
            try:
                await self._transport.send(payload)
            except SendError as exc:
                logger.error("Failed to send data: %s", exc)
                self.errors.append(exc)
                return

            self.packets_sent += 1
            self.bytes_sent += len(payload)
            if self.progress_every and self.packets_sent % self.progress_every == 0:
                logger.debug("Sent %d packets...", self.packets_sent)

            # absolute grid: a late tick is followed immediately by the next one
            next_tick += self.interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def stop(self):
        if self._stopped:
            logger.debug("Session already stopped")
            return
        self._stopped = True
        if self._transport is None:
            return

        if self._send_task is not None and not self._send_task.done():
            self._send_task.cancel()
            await asyncio.wait({self._send_task})

        try:
            await self._send_sentinel()
        finally:
            try:
                self._close_transport()
            finally:
                self._finish()

    async def _send_sentinel(self):
        try:
            await self._transport.send(sentinel_payload(self.buffer_size))
        except SendError as exc:
            logger.error("Failed to send data: %s", exc)
            exc.sentinel = True
            self.errors.append(exc)
        else:
            self.sentinel_sent = True

    def _close_transport(self):
        try:
            self._transport.close()
        except OSError as exc:
            logger.error("Failed to close socket: %s", exc)

    def _finish(self):
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

        if self._started_at is not None:
            self._stopped_at = asyncio.get_running_loop().time()
        logger.info("Stopped sending data")
        if self._finished is not None:
            self._finished.set()

    def result(self):
        elapsed = 0.0
        if self._started_at is not None and self._stopped_at is not None:
            elapsed = self._stopped_at - self._started_at
        return SessionResult(
            packets_sent=self.packets_sent,
            bytes_sent=self.bytes_sent,
            sentinel_sent=self.sentinel_sent,
            elapsed=elapsed,
            interval=self.interval,
            errors=list(self.errors),
        )


def make_transport_factory(config):
    if config.iface is None:
        return SocketTransport.connect
    return functools.partial(FrameTransport.for_destination, config.iface, sport=config.sport)


def run_session(config, transport_factory=None):
    config.validate()
    session = SenderSession(
        config.buffer_size,
        config.duration,
        config.bandwidth_mbps,
        transport_factory=transport_factory or make_transport_factory(config),
    )
    session.open(config.host, config.port)

    async def _main():
        return await session.run()

    return asyncio.run(_main())
