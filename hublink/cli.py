"""Command-line interface for hublink."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import HubLinkApp
from .config import load_config, save_config, split_host_port

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hublink", description="Sensor hub telemetry and voice command client"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser(
        "start", help="Connect to the hub and relay commands from stdin"
    )
    start_parser.add_argument("--host", help="Hub address (overrides [hub] host)")
    start_parser.add_argument(
        "--port", type=int, help=f"Hub port (default: {constants.DEFAULT_HUB_PORT})"
    )
    start_parser.add_argument(
        "--utterances",
        action="store_true",
        help="Treat stdin lines as recognised speech instead of raw commands",
    )

    set_hub_parser = subparsers.add_parser(
        "set-hub", help="Store the hub address in the configuration file"
    )
    set_hub_parser.add_argument("address", help="Hub address as HOST or HOST:PORT")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        if not (args.host or config.hub.host):
            parser.error("a hub host is required (--host or [hub] host)")
        return HubLinkApp.start(
            config, host=args.host, port=args.port, utterances=args.utterances
        )

    if args.command == "set-hub":
        host, port = split_host_port(args.address, config.hub.port)
        if not host:
            parser.error("hub address must include a host")
        config.raw.set("hub", "host", host)
        config.raw.set("hub", "port", str(port))
        save_config(config)
        LOGGER.info("Hub address %s:%s saved to %s", host, port, config.path)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
