#!/usr/bin/env python3
# SPDX-License-Identifier: GPL-2.0-only
# Script para enviar pacotes UDP com controle de taxa durante um tempo fixo
import argparse
import logging
import sys

from pacing import ConfigurationError
from udp_session import SenderConfig, run_session

logger = logging.getLogger(__name__)


def setup_logging(verbose=False, quiet=False):
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')


def build_parser():
    parser = argparse.ArgumentParser(description='Send rate-paced UDP packets for a fixed duration')
    parser.add_argument('--dst', required=True, help='Destination host')
    parser.add_argument('--dport', type=int, default=5001, help='Destination port (default: 5001)')
    parser.add_argument('--size', type=int, default=2048, help='Payload size in bytes (default: 2048)')
    parser.add_argument('--rate', type=float, default=10.0, help='Rate in Mbps (default: 10.0)')
    parser.add_argument('--duration', type=float, default=10.0, help='Sending time in seconds (default: 10.0)')
    parser.add_argument('--iface', default=None,
                        help='Inject Ether/IP/UDP frames on this interface with scapy ("auto" picks eth0)')
    parser.add_argument('--sport', type=int, default=5000, help='Source port in frame mode (default: 5000)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug output')
    parser.add_argument('-q', '--quiet', action='store_true', help='Errors only')
    return parser


def config_from_args(args):
    return SenderConfig(
        host=args.dst,
        port=args.dport,
        buffer_size=args.size,
        duration=args.duration,
        bandwidth_mbps=args.rate,
        iface=args.iface,
        sport=args.sport,
    )


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, quiet=args.quiet)

    config = config_from_args(args)
    try:
        interval = config.validate().interval
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    print(f"Sending UDP packets to {config.host}:{config.port}"
          + (f" on {config.iface}" if config.iface else ""))
    print(f"  Payload size: {config.buffer_size} bytes")
    print(f"  Target Rate: {config.bandwidth_mbps} Mbps")
    print(f"  Duration: {config.duration} s")
    print(f"  Interval: {interval * 1000:.4f} ms")
    print("-" * 60)

    try:
        result = run_session(config)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    print("-" * 60)
    print(f"Done! Sent {result.packets_sent} packets"
          f" ({result.bytes_sent} bytes) in {result.elapsed:.2f}s")
    print(f"  Achieved rate: {result.achieved_mbps:.3f} Mbps")
    if not result.sentinel_sent:
        print("  End-of-stream packet was not delivered")

    return 0 if result.ok else 1


if __name__ == '__main__':
    sys.exit(main())
