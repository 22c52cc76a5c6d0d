"""Ticketmaster Resale Watch

Watches Ticketmaster events and pings users when resale tickets appear.
"""
import sys


def main() -> int:
    """Main entry point that runs the CLI."""
    # Import here to avoid circular imports
    from ticketmaster_resale_watch.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
