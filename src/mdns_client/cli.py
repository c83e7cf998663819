"""CLI that discovers a service and prints the snapshot periodically."""
from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Sequence, TextIO

from .config import Config
from .engine import DiscoveryEngine
from .errors import InitError
from .resolver import ServiceInstance


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed CLI options:
            - target (str): Service instance name or service type.
            - config (str | None): Path to YAML config file.
            - interval (float): Seconds between snapshots.
            - count (int | None): Number of snapshots before exiting.
            - log_level (str): Logging level.
    """
    parser = argparse.ArgumentParser(
        description="Discover mDNS/DNS-SD services on the local link",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("target", help="Instance name or service type, e.g. _http._tcp.local")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument("--interval", type=float, default=2.0, help="Seconds between snapshots")
    parser.add_argument("--count", type=int, default=None, help="Stop after N snapshots")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    return parser.parse_args(argv)


def format_service(service: ServiceInstance) -> str:
    """Render one service as a single line."""
    addresses = ", ".join(str(a) for a in sorted(service.addresses, key=lambda a: (a.version, a)))
    txt = " ".join(f"{k}={v}" for k, v in sorted(service.txt.items()))
    line = f"{service.instance_name} -> {service.host}:{service.port} [{addresses}]"
    return f"{line} {txt}" if txt else line


def print_snapshot(services: Sequence[ServiceInstance], out: TextIO | None = None) -> None:
    out = out if out is not None else sys.stdout
    if not services:
        print("no services found", file=out)
    for service in services:
        print(format_service(service), file=out)
    out.flush()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI entry point.

    Loads the optional configuration, starts discovery and prints the known
    services every ``--interval`` seconds until interrupted.

    Returns:
        int: Process exit status.
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_file(args.config) if args.config else Config()
    except (OSError, ValueError) as exc:
        logger.error("failed to load configuration: %s", exc)
        return 2

    try:
        engine = DiscoveryEngine(args.target, config)
    except InitError as exc:
        logger.error("%s", exc)
        return 2

    shown = 0
    try:
        with engine:
            while args.count is None or shown < args.count:
                time.sleep(args.interval)
                print_snapshot(engine.get_services())
                shown += 1
                if engine.degraded:
                    logger.warning("discovery degraded; showing last known services")
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
