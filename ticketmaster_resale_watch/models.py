"""Data models and types for the Ticketmaster Resale Watch."""
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

EVENT_URL_TEMPLATE = "https://www.ticketmaster.no/event/{event_id}"
RESALE_API_TEMPLATE = "https://availability.ticketmaster.no/api/v2/TM_NO/resale/{event_id}"

MIN_POLL_MINUTES = 1
MAX_POLL_MINUTES = 60
DEFAULT_POLL_MINUTES = 5

_MENTION_CHARS = re.compile(r"[<@!>]")


def parse_user_ids(text: str) -> Tuple[str, ...]:
    """Split a comma-separated list of user ids or mentions into bare ids.

    Mentions like ``<@123>`` and ``<@!123>`` are reduced to ``123``; blank
    entries are dropped.
    """
    ids = (_MENTION_CHARS.sub("", part.strip()) for part in text.split(","))
    return tuple(user_id for user_id in ids if user_id)


@dataclass(frozen=True)
class NotifyTarget:
    """Where a report is delivered and whom it pings."""
    channel_id: str
    user_ids: Tuple[str, ...] = ()

    @property
    def mentions(self) -> str:
        return " ".join(f"<@{user_id}>" for user_id in self.user_ids)


@dataclass(frozen=True)
class WatchDefinition:
    """Identifies and configures one watch."""
    event_id: str
    channel_id: str
    ping_users: Tuple[str, ...] = ()
    poll_minutes: int = DEFAULT_POLL_MINUTES

    def __post_init__(self):
        if not self.event_id or not self.event_id.strip():
            raise ValueError("event_id must not be empty")
        if not MIN_POLL_MINUTES <= self.poll_minutes <= MAX_POLL_MINUTES:
            raise ValueError(
                f"poll_minutes must be between {MIN_POLL_MINUTES} and {MAX_POLL_MINUTES}, "
                f"got {self.poll_minutes}"
            )
        # Accept any iterable of ids but always store a tuple
        object.__setattr__(self, "ping_users", tuple(self.ping_users))

    @property
    def notify_target(self) -> NotifyTarget:
        return NotifyTarget(channel_id=self.channel_id, user_ids=self.ping_users)

    @property
    def event_url(self) -> str:
        return EVENT_URL_TEMPLATE.format(event_id=self.event_id)

    @property
    def resale_api_url(self) -> str:
        return RESALE_API_TEMPLATE.format(event_id=self.event_id)


@dataclass(frozen=True)
class Offer:
    """One resale listing snapshot from the inventory API."""
    kind: str
    price_total: Optional[int] = None  # minor units (øre)
    quantities: Tuple[int, ...] = ()

    @property
    def is_actionable(self) -> bool:
        return self.kind == "resale" and self.price_total is not None and bool(self.quantities)

    @property
    def max_quantity(self) -> int:
        return max(self.quantities) if self.quantities else 0


@dataclass(frozen=True)
class TicketAvailabilityReport:
    """Detection result emitted once per watch."""
    event_id: str
    total_tickets: int
    offer_count: int
    max_bundle_size: int
    cheapest_price: float  # major units (NOK)
    cheapest_quantities: Tuple[int, ...]

    @property
    def event_url(self) -> str:
        return EVENT_URL_TEMPLATE.format(event_id=self.event_id)


@dataclass(frozen=True)
class FetchSuccess:
    """The resale resource answered with a JSON body."""
    data: Any


@dataclass(frozen=True)
class FetchEmpty:
    """The resource answered but there was nothing usable this cycle."""
    reason: str = "no data"


@dataclass(frozen=True)
class FetchError:
    """The fetch could not be performed at all."""
    reason: str


FetchResult = Union[FetchSuccess, FetchEmpty, FetchError]


@dataclass
class Notification:
    """Represents a notification to be sent."""
    title: str
    message: str
    target: Optional[NotifyTarget] = None
    priority: int = 3  # 1=min, 3=default, 5=max
    tags: Optional[List[str]] = None


@dataclass
class SessionConfig:
    """Configuration for the browser session."""
    headless: bool = True
    timeout: int = 30
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/143.0.0.0 Safari/537.36"
    )
    viewport: Tuple[int, int] = (1280, 720)
    timezone: str = "Europe/Oslo"
    locale: str = "nb-NO"


@dataclass
class LoopConfig:
    """Timing and behaviour of a single watch loop."""
    settle_delay: float = 1.0  # seconds after navigation before fetching
    navigation_timeout: float = 30.0  # seconds
    stop_timeout: float = 5.0  # seconds to wait on teardown before aborting
    keep_polling_after_alert: bool = False


@dataclass
class NotificationConfig:
    """Configuration for notifications."""
    enabled: bool = True
    discord_token: Optional[str] = None
    ntfy_topic: Optional[str] = None
    retry_attempts: int = 3
    retry_delay: int = 5  # seconds


@dataclass
class AppConfig:
    """Main application configuration."""
    database_path: str = "data/watches.db"
    default_poll_minutes: int = DEFAULT_POLL_MINUTES
    log_level: str = "INFO"
    session: SessionConfig = field(default_factory=SessionConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
