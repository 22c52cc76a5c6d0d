"""Command-line interface for Ticketmaster Resale Watch."""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from ticketmaster_resale_watch import __version__
from ticketmaster_resale_watch.app import WatchService, configure_logging
from ticketmaster_resale_watch.config import VALID_LOG_LEVELS, load_config
from ticketmaster_resale_watch.models import (
    AppConfig,
    MAX_POLL_MINUTES,
    MIN_POLL_MINUTES,
    WatchDefinition,
    parse_user_ids,
)
from ticketmaster_resale_watch.store import WatchStore

logger = logging.getLogger(__name__)


def poll_minutes(value: str) -> int:
    """argparse type for a check interval in minutes."""
    try:
        minutes = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid interval: {value!r}")
    if not MIN_POLL_MINUTES <= minutes <= MAX_POLL_MINUTES:
        raise argparse.ArgumentTypeError(
            f"interval must be between {MIN_POLL_MINUTES} and {MAX_POLL_MINUTES} minutes"
        )
    return minutes


def _add_target_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument(
        '--channel',
        required=required,
        help='Discord channel ID to post the alert in',
    )
    parser.add_argument(
        '--users',
        required=required,
        default='',
        help='User IDs or mentions to ping (comma-separated)',
    )
    parser.add_argument(
        '--interval',
        type=poll_minutes,
        help='Check interval in minutes (default: DEFAULT_POLL_MINUTES)',
    )


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: List of command line arguments. If None, uses sys.argv[1:].

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog='ticketwatch',
        description="Watch Ticketmaster events and get pinged when resale tickets appear.",
    )
    parser.add_argument(
        '--db',
        dest='database_path',
        help='Path of the SQLite file holding watches (default: DATABASE_PATH)',
    )
    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=sorted(VALID_LOG_LEVELS),
        help='Logging level',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_const',
        const='DEBUG',
        dest='log_level',
        help='Enable verbose output (same as --log-level DEBUG)',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run all persisted watches until interrupted')
    run_parser.add_argument(
        '--watch',
        metavar='EVENT_ID',
        action='append',
        default=[],
        help='Also start watching this event (can be specified multiple times)',
    )
    _add_target_arguments(run_parser, required=False)

    add_parser = subparsers.add_parser('add', help='Persist a watch; it starts on the next run')
    add_parser.add_argument('event_id', help='Ticketmaster event ID')
    _add_target_arguments(add_parser, required=True)

    remove_parser = subparsers.add_parser('remove', help='Delete a persisted watch')
    remove_parser.add_argument('event_id', help='Ticketmaster event ID')

    subparsers.add_parser('list', help='Show persisted watches')

    if args is None:
        args = sys.argv[1:]
    return parser.parse_args(args)


def create_config_from_args(args: argparse.Namespace, config: Optional[AppConfig] = None) -> AppConfig:
    """Apply command line overrides on top of the environment configuration."""
    config = config or load_config()
    if args.database_path:
        config.database_path = args.database_path
    if args.log_level:
        config.log_level = args.log_level
    return config


def build_definition(event_id: str, args: argparse.Namespace, config: AppConfig) -> WatchDefinition:
    """Build a watch definition from the target arguments of a subcommand."""
    return WatchDefinition(
        event_id=event_id.strip(),
        channel_id=args.channel or '',
        ping_users=parse_user_ids(args.users or ''),
        poll_minutes=args.interval or config.default_poll_minutes,
    )


def print_watches(watches: List[WatchDefinition]) -> None:
    """Print watches in a readable form."""
    if not watches:
        print("No watches")
        return

    print(f"\n=== Watches ({len(watches)}) ===\n")
    for watch in watches:
        users = ", ".join(watch.ping_users) or "none"
        print(f"{watch.event_id}")
        print(f"  URL: {watch.event_url}")
        print(f"  Channel: {watch.channel_id or 'none'}")
        print(f"  Users: {users}")
        print(f"  Interval: {watch.poll_minutes}m\n")


def cmd_add(args: argparse.Namespace, config: AppConfig) -> int:
    store = WatchStore(config.database_path)
    definition = build_definition(args.event_id, args, config)
    if any(w.event_id == definition.event_id for w in store.load_all()):
        print(f"Already watching event {definition.event_id}")
        return 1
    store.save(definition)
    print(f"Added watch for {definition.event_url}, checking every {definition.poll_minutes}m")
    return 0


def cmd_remove(args: argparse.Namespace, config: AppConfig) -> int:
    store = WatchStore(config.database_path)
    event_id = args.event_id.strip()
    if not any(w.event_id == event_id for w in store.load_all()):
        print(f"Not watching event {event_id}")
        return 1
    store.delete(event_id)
    print(f"Removed watch for event {event_id}")
    return 0


def cmd_list(args: argparse.Namespace, config: AppConfig) -> int:
    print_watches(WatchStore(config.database_path).load_all())
    return 0


async def cmd_run(args: argparse.Namespace, config: AppConfig) -> int:
    extra = [build_definition(event_id, args, config) for event_id in args.watch]
    service = WatchService(config)
    service.install_signal_handlers()
    await service.run(extra_watches=extra)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    try:
        config = create_config_from_args(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    configure_logging(level=config.log_level)

    try:
        if args.command == 'run':
            return asyncio.run(cmd_run(args, config))
        if args.command == 'add':
            return cmd_add(args, config)
        if args.command == 'remove':
            return cmd_remove(args, config)
        return cmd_list(args, config)
    except ValueError as e:
        logger.error(f"❌ {e}")
        return 2
    except KeyboardInterrupt:
        print("\n👋 Operation cancelled by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
