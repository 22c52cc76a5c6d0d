"""Shared fixtures for the watch engine tests."""
import pytest

from ticketmaster_resale_watch.models import LoopConfig, WatchDefinition


@pytest.fixture
def definition():
    """A watch definition for a test event."""
    return WatchDefinition(
        event_id="1A0056D9A5E43E3F",
        channel_id="555",
        ping_users=("111", "222"),
        poll_minutes=5,
    )


@pytest.fixture
def loop_config():
    """Loop timings short enough for tests."""
    return LoopConfig(settle_delay=0, navigation_timeout=1, stop_timeout=0.2)


@pytest.fixture
def two_offer_payload():
    return [
        {"type": "resale", "price": {"total": 15000}, "quantities": [2, 4]},
        {"type": "resale", "price": {"total": 9000}, "quantities": [1]},
    ]
