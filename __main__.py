"""
Entry point for PresenceHub.
This module provides a command-line interface to start the gateway.
"""

import argparse

from PresenceHub.config import config
from PresenceHub.start import server


def parse():
    # Initialize argument parser for command line interface
    parser = argparse.ArgumentParser(prog='PresenceHub', description='PresenceHub starter')
    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    # Setup server command line arguments
    server_parser = subparsers.add_parser('server', help='Startup gateway and messaging api')
    server_parser.add_argument('--host', default=config.DEFAULT_HOST,
                               help=f'listening address (default: {config.DEFAULT_HOST})')
    server_parser.add_argument('--port', type=int, default=config.DEFAULT_SERVER_PORT,
                               help=f'gateway port (default: {config.DEFAULT_SERVER_PORT})')
    server_parser.add_argument('--api-port', type=int, default=config.DEFAULT_API_PORT,
                               help=f'api port (default: {config.DEFAULT_API_PORT})')

    # Add 'srv-only' command
    srv_parser = subparsers.add_parser('srv-only', help='Startup gateway only')
    srv_parser.add_argument('--host', default=config.DEFAULT_HOST,
                            help=f'listening address (default: {config.DEFAULT_HOST})')
    srv_parser.add_argument('--port', type=int, default=config.DEFAULT_SERVER_PORT,
                            help=f'gateway port (default: {config.DEFAULT_SERVER_PORT})')

    args = parser.parse_args()

    return args


def main():
    args = parse()

    if args.command == 'server':
        server.server(host=args.host, port=args.port, api_port=args.api_port)
    elif args.command == 'srv-only':
        server.server(host=args.host, port=args.port, srv_only=True)
    else:
        raise Exception('Unknown command')


if __name__ == '__main__':
    main()
