"""
Process-wide registry of active watches.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .browser import launch_session
from .exceptions import AlreadyWatching, NotWatching
from .models import LoopConfig, SessionConfig, TicketAvailabilityReport, WatchDefinition
from .notifications import NotificationManager
from .store import WatchStore
from .watcher import SessionFactory, WatchLoop

logger = logging.getLogger(__name__)


@dataclass
class _WatchEntry:
    definition: WatchDefinition
    loop: Optional[WatchLoop] = None


class WatchRegistry:
    """Maps event ids to running watch loops.

    The registry starts loops on registration, retires them once their alert
    has been delivered, and keeps the store in sync so watches survive
    restarts. All methods must be called from the event loop thread.
    """

    def __init__(
        self,
        store: WatchStore,
        notifier: NotificationManager,
        loop_config: Optional[LoopConfig] = None,
        session_config: Optional[SessionConfig] = None,
        session_factory: SessionFactory = launch_session,
    ):
        self.store = store
        self.notifier = notifier
        self.loop_config = loop_config or LoopConfig()
        self.session_config = session_config or SessionConfig()
        self.session_factory = session_factory
        self._watches: Dict[str, _WatchEntry] = {}
        self._pending_stops: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._watches)

    def is_watching(self, event_id: str) -> bool:
        entry = self._watches.get(event_id)
        return entry is not None and entry.loop.is_alive

    def list(self) -> List[WatchDefinition]:
        """Snapshot of the current watch definitions in registration order.

        Includes watches whose loop stopped after losing its browser.
        """
        return [entry.definition for entry in list(self._watches.values())]

    async def register(self, definition: WatchDefinition) -> None:
        """Start watching an event and persist it.

        Raises:
            AlreadyWatching: if the event already has a live loop.
        """
        existing = self._watches.get(definition.event_id)
        if existing is not None:
            if existing.loop.is_alive:
                raise AlreadyWatching(definition.event_id)
            logger.info(f"[{definition.event_id}] Replacing stopped watch")
            self._stop_in_background(existing.loop)

        await self._start(definition)
        self.store.save(definition)

    async def unregister(self, event_id: str) -> None:
        """Stop watching an event and forget it.

        The loop is stopped in the background; this returns immediately.

        Raises:
            NotWatching: if the event is not registered.
        """
        entry = self._watches.pop(event_id, None)
        if entry is None:
            raise NotWatching(event_id)

        self.store.delete(event_id)
        self._stop_in_background(entry.loop)
        logger.info(f"[{event_id}] 🛑 Stopped watching")

    async def restore_all(self) -> int:
        """Start a loop for every persisted watch.

        Failures are logged per watch and do not stop the others.

        Returns:
            Number of watches restored.
        """
        definitions = self.store.load_all()
        logger.info(f"♻️ Restoring {len(definitions)} persisted watch(es)")

        restored = 0
        for definition in definitions:
            if self.is_watching(definition.event_id):
                logger.warning(f"[{definition.event_id}] Already running, not restoring twice")
                continue
            try:
                await self._start(definition)
                restored += 1
            except Exception as e:
                logger.error(f"[{definition.event_id}] Failed to restore watch: {e}", exc_info=True)
        return restored

    async def shutdown(self) -> None:
        """Stop every loop without touching the store, so watches resume on restart."""
        entries = list(self._watches.values())
        self._watches.clear()
        if entries:
            logger.info(f"Stopping {len(entries)} watch(es)...")

        results = await asyncio.gather(
            *(entry.loop.stop() for entry in entries),
            return_exceptions=True
        )
        for entry, result in zip(entries, results):
            if isinstance(result, Exception):
                logger.error(f"[{entry.definition.event_id}] Error stopping watch: {result}")

        if self._pending_stops:
            await asyncio.gather(*self._pending_stops, return_exceptions=True)

    async def _start(self, definition: WatchDefinition) -> None:
        entry = _WatchEntry(definition=definition)

        async def on_report(report: TicketAvailabilityReport) -> None:
            await self._handle_report(entry, report)

        def on_session_lost(event_id: str) -> None:
            self._handle_session_lost(entry)

        entry.loop = WatchLoop(
            definition,
            on_report,
            config=self.loop_config,
            session_config=self.session_config,
            session_factory=self.session_factory,
            on_session_lost=on_session_lost,
        )

        self._watches[definition.event_id] = entry
        try:
            await entry.loop.start()
        except Exception:
            if self._watches.get(definition.event_id) is entry:
                del self._watches[definition.event_id]
            raise

    async def _handle_report(self, entry: _WatchEntry, report: TicketAvailabilityReport) -> None:
        event_id = entry.definition.event_id
        try:
            delivered = await self.notifier.send(entry.definition.notify_target, report)
            if not delivered:
                logger.error(f"[{event_id}] Alert could not be delivered")
        except Exception as e:
            logger.error(f"[{event_id}] Error delivering alert: {e}", exc_info=True)

        # A watch fires at most once
        if self._watches.get(event_id) is entry:
            del self._watches[event_id]
            self.store.delete(event_id)
            self._stop_in_background(entry.loop)
            logger.info(f"[{event_id}] Watch complete, removed")

    def _handle_session_lost(self, entry: _WatchEntry) -> None:
        # The stopped entry stays mapped so it can still be unregistered or replaced
        event_id = entry.definition.event_id
        if self._watches.get(event_id) is entry:
            logger.warning(
                f"[{event_id}] Watch stopped after losing its browser; "
                "it stays persisted and will resume on next start"
            )

    def _stop_in_background(self, loop: WatchLoop) -> None:
        task = asyncio.create_task(loop.stop(), name=f"stop-{loop.event_id}")
        self._pending_stops.add(task)
        task.add_done_callback(self._on_stop_done)

    def _on_stop_done(self, task: asyncio.Task) -> None:
        self._pending_stops.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error stopping watch: {error}")
