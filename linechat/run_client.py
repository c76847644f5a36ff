"""
Chat Client Runner

Validates the server address and starts the null-terminated protocol
chat client.
"""

import argparse
import ipaddress
import logging
import re
import sys

from linechat.null_protocol import protocol
from linechat.null_protocol.client import EXIT_FAILURE, NullChatClient

INTEGER_RE = re.compile(r'-?[0-9]+')


def ipv4_address(value: str) -> str:
    """argparse type for an IPv4 literal"""
    try:
        return str(ipaddress.IPv4Address(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Error: Invalid IP address '{value}'.")


def port_number(value: str) -> int:
    """argparse type for a port in [MIN_PORT, MAX_PORT]"""
    if not INTEGER_RE.fullmatch(value):
        raise argparse.ArgumentTypeError(
            f"Error: Invalid input '{value}' received for port number."
        )
    port = int(value)
    if port < protocol.MIN_PORT or port > protocol.MAX_PORT:
        raise argparse.ArgumentTypeError(
            f"Error: Port must be in range [{protocol.MIN_PORT}, {protocol.MAX_PORT}]."
        )
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat client (null-terminated protocol)")
    parser.add_argument("server_ip", type=ipv4_address, help="Server IPv4 address")
    parser.add_argument("port", type=port_number, help="Server port")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Diagnostic logging level"
    )
    return parser


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    client = NullChatClient(args.server_ip, args.port, interactive=sys.stdin.isatty())
    try:
        return client.run()
    except KeyboardInterrupt:
        print()
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
