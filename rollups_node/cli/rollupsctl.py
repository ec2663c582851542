#!/usr/bin/env python3
"""
rollupsctl - Rollups Node Operator CLI

Inspect the node's services and build test DApp inputs.
"""
import argparse
import os
import sys
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import requests

from rollups_node.addresses import get_book_from_env, get_test_book
from rollups_node.node import build_registry
from rollups_node.testdapp import encode_echo, encode_reject


class RollupsCLI:
    """Rollups node status API client."""

    def __init__(self, api_url: str, timeout: float = 5.0):
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    def _get(self, path: str) -> Dict[str, Any]:
        """Make GET request to API."""
        url = f"{self.api_url}{path}"
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def status(self) -> None:
        """Display state of every service of a running node."""
        data = self._get('/v1/services')
        services: List[Dict[str, Any]] = data.get('services', [])

        if not services:
            print("No services found.")
            return

        print(f"{'SERVICE':<20} {'STATE':<12} {'READY':<6} PORT")
        print("=" * 50)
        for service in services:
            ready = "yes" if service.get('ready') else "no"
            print(
                f"{service.get('name', 'unknown'):<20} "
                f"{service.get('state', 'unknown'):<12} "
                f"{ready:<6} "
                f"{service.get('healthcheck_port', '?')}"
            )


def show_services() -> None:
    """Print the services resolved from the local environment."""
    registry = build_registry()

    print(f"{'SERVICE':<20} {'BINARY':<36} PORT")
    print("=" * 62)
    for service in registry:
        print(f"{service.name:<20} {service.binary_name:<36} {service.healthcheck_port}")


def encode_message(kind: str, hex_payload: str) -> str:
    """
    Encode a test DApp message.

    Args:
        kind: 'echo' or 'reject'
        hex_payload: Payload as hex, with or without 0x prefix

    Returns:
        Encoded message as 0x hex
    """
    digits = hex_payload[2:] if hex_payload.startswith(('0x', '0X')) else hex_payload
    payload = bytes.fromhex(digits)

    if kind == 'echo':
        data = encode_echo(payload)
    else:
        data = encode_reject(payload)

    return '0x' + data.hex()


def show_addresses(from_env: bool) -> None:
    """Print the contract address book."""
    book = get_book_from_env() if from_env else get_test_book()
    for name, address in asdict(book).items():
        print(f"{name:<24} {address}")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Rollups Node Operator CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--api-url',
        default=os.environ.get('CARTESI_NODE_API_URL', 'http://localhost:10000'),
        help='Node status API URL (default: $CARTESI_NODE_API_URL or http://localhost:10000)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # services
    subparsers.add_parser('services', help='List services resolved from the local environment')

    # status
    subparsers.add_parser('status', help='Show service state of a running node')

    # encode
    encode_parser = subparsers.add_parser('encode', help='Encode a test DApp input')
    encode_parser.add_argument('kind', choices=['echo', 'reject'], help='Message kind')
    encode_parser.add_argument('payload', help='Payload hex-encoded (e.g., 0xdeadbeef)')

    # addresses
    addresses_parser = subparsers.add_parser('addresses', help='Show contract addresses')
    addresses_parser.add_argument(
        '--env',
        action='store_true',
        help='Load addresses from environment variables instead of test addresses'
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'services':
            show_services()
        elif args.command == 'status':
            RollupsCLI(args.api_url).status()
        elif args.command == 'encode':
            print(encode_message(args.kind, args.payload))
        elif args.command == 'addresses':
            show_addresses(args.env)
        else:
            parser.print_help()
            sys.exit(1)
    except requests.exceptions.HTTPError as e:
        print(f"API Error: {e}", file=sys.stderr)
        if e.response is not None:
            print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except requests.exceptions.ConnectionError:
        print(f"Error: node not reachable at {args.api_url}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        # ConfigError and AddressError are ValueErrors
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
