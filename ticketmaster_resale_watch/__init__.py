"""Ticketmaster Resale Watch package.

This package watches Ticketmaster events for resale tickets and pings
the configured users once inventory appears.
"""

__version__ = "0.2.0"

# Import key components to make them available at the package level
from .models import (
    AppConfig,
    LoopConfig,
    NotificationConfig,
    Offer,
    SessionConfig,
    TicketAvailabilityReport,
    WatchDefinition,
)
from .exceptions import AlreadyWatching, NotWatching, WatchError
from .detection import build_report, parse_offers
from .notifications import NotificationManager
from .store import WatchStore
from .watcher import WatchLoop
from .registry import WatchRegistry

__all__ = [
    'AppConfig',
    'LoopConfig',
    'NotificationConfig',
    'Offer',
    'SessionConfig',
    'TicketAvailabilityReport',
    'WatchDefinition',
    'AlreadyWatching',
    'NotWatching',
    'WatchError',
    'build_report',
    'parse_offers',
    'NotificationManager',
    'WatchStore',
    'WatchLoop',
    'WatchRegistry',
]
