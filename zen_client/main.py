"""
Main entry point for the Zen session client.

This module provides the command-line interface for logging in, logging out,
inspecting the stored token and calling RPC services with the current session.
"""

import sys
import argparse
import asyncio
import json
import logging
from typing import Optional, List

from zen_shared.exceptions import ZenError, ConfigurationError
from zen_shared.logging_config import LogLevel, setup_logging, mask_token
from zen_shared.models import Channel, Code, Empty
from zen_client.config import ClientConfiguration
from zen_client.error_handling import ConsoleNotificationSink, LoggingNotificationSink
from zen_client.manager import SessionManager
from zen_client.services import SERVICES

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="zen-client",
        description="Zen session client",
        epilog="""
Examples:
  %(prog)s login --email user@example.com   # Request a one-time code
  %(prog)s login --code 1234                 # Submit the code, store the token
  %(prog)s call management Get '{"id": 1}'   # Call an RPC with the session
  %(prog)s status --json                     # Show session summary as JSON
  %(prog)s logout                            # Log out and forget the token
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument("--config", type=str, metavar="FILE",
                              help="Path to configuration file")
    config_group.add_argument("--server-url", type=str, metavar="URL",
                              help="Override server URL")
    config_group.add_argument("--storage-backend", type=str, metavar="BACKEND",
                              choices=["auto", "keyring", "file", "memory"],
                              help="Override token storage backend")

    output_group = parser.add_argument_group('Output')
    output_group.add_argument("--verbose", "-v", action="store_true",
                              help="Enable verbose output")
    output_group.add_argument("--quiet", "-q", action="store_true",
                              help="Suppress non-error output")
    output_group.add_argument("--log-file", type=str, metavar="FILE",
                              help="Log to file in addition to the console")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    login_parser = subparsers.add_parser("login", help="Run one step of the login exchange")
    login_parser.add_argument("--email", type=str, metavar="ADDR",
                              help="Contact address the one-time code is sent to")
    login_parser.add_argument("--code", type=str, metavar="CODE",
                              help="One-time code received on the contact channel")
    login_parser.add_argument("--refresh", action="store_true",
                              help="Refresh the token without credentials")

    subparsers.add_parser("logout", help="Log out and forget the stored token")

    token_parser = subparsers.add_parser("token", help="Print the current token")
    token_parser.add_argument("--show", action="store_true",
                              help="Print the full token instead of a masked one")

    call_parser = subparsers.add_parser("call", help="Call an RPC method")
    call_parser.add_argument("service", choices=sorted(SERVICES), help="Service name")
    call_parser.add_argument("method", help="Method name, e.g. Get")
    call_parser.add_argument("payload", nargs="?", default="{}",
                             help="JSON request message (default: {})")

    status_parser = subparsers.add_parser("status", help="Show session and configuration summary")
    status_parser.add_argument("--json", action="store_true",
                               help="Output status in JSON format")

    args = parser.parse_args(argv)

    if args.quiet and args.verbose:
        parser.error("--quiet and --verbose are mutually exclusive")

    if args.command == "login":
        if args.refresh and (args.email or args.code):
            parser.error("--refresh cannot be combined with --email or --code")
        if not (args.refresh or args.email or args.code):
            parser.error("login requires --email, --code or --refresh")

    if args.command == "call":
        try:
            payload = json.loads(args.payload)
        except json.JSONDecodeError as e:
            parser.error(f"invalid JSON payload: {e}")
        if not isinstance(payload, dict):
            parser.error("JSON payload must be an object")
        args.payload = payload

    return args


def build_configuration(args: argparse.Namespace) -> ClientConfiguration:
    """Load configuration and apply command line overrides."""
    config = ClientConfiguration(args.config)

    if args.server_url:
        config.set_override('server.url', args.server_url)
    if args.storage_backend:
        config.set_override('auth.storage_backend', args.storage_backend)
    if args.verbose:
        config.set_override('logging.level', 'DEBUG')
    if args.quiet:
        config.set_override('logging.level', 'ERROR')
    if args.log_file:
        config.set_override('logging.file', args.log_file)

    return config


def configure_logging(config: ClientConfiguration) -> None:
    setup_logging(
        log_level=config.get_log_level(),
        log_format=config.get_log_format(),
        log_file=config.get_log_file(),
        max_file_size=config.get_config('logging.max_size', 10485760),
        backup_count=config.get_config('logging.backup_count', 3),
        enable_audit=config.get_audit_file() is not None or config.get_log_level() == LogLevel.DEBUG,
        audit_file=config.get_audit_file()
    )


def _echo(args: argparse.Namespace, message: str) -> None:
    if not args.quiet:
        print(message)


async def handle_login(args: argparse.Namespace, manager: SessionManager) -> int:
    if args.refresh:
        verifier = Empty()
    elif args.code:
        verifier = Code(args.code, identifier=args.email)
    else:
        verifier = Channel(args.email)

    token = await manager.login(verifier)

    if isinstance(verifier, Channel):
        _echo(args, f"✓ Verification code sent to {args.email}")
    elif token:
        _echo(args, f"✓ Logged in (token {mask_token(token)})")
    else:
        _echo(args, "✓ Login completed without a token")
    return 0


async def handle_logout(args: argparse.Namespace, manager: SessionManager) -> int:
    await manager.logout()
    _echo(args, "✓ Logged out")
    return 0


async def handle_token(args: argparse.Namespace, manager: SessionManager) -> int:
    token = await manager.get_token()
    if not token:
        print("No token available", file=sys.stderr)
        return 1
    print(token if args.show else mask_token(token))
    return 0


async def handle_call(args: argparse.Namespace, manager: SessionManager) -> int:
    client = manager.clients.get(args.service)
    try:
        client.service.method(args.method)
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return 1

    succeeded = []
    recovered = []

    async def action():
        response = await client.call(args.method, args.payload)
        succeeded.append(True)
        return response

    async def recovery():
        await manager.refresh_recovery()
        recovered.append(True)

    response = await manager.exec(action, recovery=recovery)

    if recovered:
        print("Session was refreshed; run the call again", file=sys.stderr)
    if not succeeded:
        return 1
    print(json.dumps(response, indent=2))
    return 0


async def handle_status(args: argparse.Namespace, manager: SessionManager) -> int:
    config = manager.config
    stored = manager.tokens.has_token()

    status = {
        'server_url': manager.session.url,
        'authenticated': stored,
        'storage_backend': config.get_storage_backend(),
        'storage_dir': config.get_storage_dir(),
        'single_flight': config.is_single_flight_enabled(),
        'config_file': config.get_config_file_path(),
    }

    if args.json:
        print(json.dumps(status))
    else:
        print(f"Server: {status['server_url'] or '<not set>'}")
        print(f"Authenticated: {'Yes' if stored else 'No'}")
        print(f"Token storage: {status['storage_backend']} ({status['storage_dir']})")
        if args.verbose:
            print(f"Single-flight refresh: {'on' if status['single_flight'] else 'off'}")
            print(f"Configuration: {status['config_file']}")
    return 0


HANDLERS = {
    'login': handle_login,
    'logout': handle_logout,
    'token': handle_token,
    'call': handle_call,
    'status': handle_status,
}


async def run_command(args: argparse.Namespace, config: ClientConfiguration) -> int:
    """Run one command against a fresh session manager."""
    if config.should_show_notifications():
        sink = ConsoleNotificationSink()
    else:
        sink = LoggingNotificationSink()

    async with SessionManager(config, sink=sink) as manager:
        return await HANDLERS[args.command](args, manager)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        config = build_configuration(args)
        configure_logging(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        if not args.quiet:
            print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except ZenError as e:
        logger.debug(f"Command {args.command} failed: {e.message}")
        print(f"✗ {e.name}: {e.message}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Command {args.command} failed: {e}")
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
