"""Errors surfaced to callers of the watch registry."""


class WatchError(Exception):
    """Base class for registry errors about a single event."""

    def __init__(self, event_id: str, message: str):
        super().__init__(message)
        self.event_id = event_id


class AlreadyWatching(WatchError):
    """Raised when registering an event that already has an active loop."""

    def __init__(self, event_id: str):
        super().__init__(event_id, f"Already watching event {event_id}")


class NotWatching(WatchError):
    """Raised when unregistering an event that is not being watched."""

    def __init__(self, event_id: str):
        super().__init__(event_id, f"Not watching event {event_id}")
