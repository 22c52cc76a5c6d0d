"""
Main application module for Ticketmaster Resale Watch.
"""
import asyncio
import logging
import signal
from typing import Iterable, Optional

from .exceptions import AlreadyWatching
from .models import AppConfig, WatchDefinition
from .notifications import create_notification_manager
from .registry import WatchRegistry
from .store import WatchStore

logger = logging.getLogger(__name__)


class WatchService:
    """Runs the watch registry until the process is asked to stop."""

    def __init__(self, config: AppConfig, registry: Optional[WatchRegistry] = None):
        """Initialize with application configuration."""
        self.config = config
        self.shutdown_event = asyncio.Event()
        self.registry = registry or WatchRegistry(
            store=WatchStore(config.database_path),
            notifier=create_notification_manager(config.notification),
            loop_config=config.loop,
            session_config=config.session,
        )

    def install_signal_handlers(self) -> None:
        """Register SIGINT/SIGTERM handlers that trigger a graceful shutdown.

        Must be called while the event loop is running.
        """
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._handle_shutdown, signum, None)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(signum, self._handle_shutdown)

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle shutdown signals gracefully."""
        logger.warning(f"Received signal {signum}, initiating graceful shutdown...")
        self.shutdown_event.set()

    async def run(self, extra_watches: Iterable[WatchDefinition] = ()) -> None:
        """Restore persisted watches, add any extra ones, and wait for shutdown."""
        logger.info("🚀 Starting Ticketmaster Resale Watch")

        restored = await self.registry.restore_all()
        logger.info(f"👀 Restored {restored} watch(es)")

        for definition in extra_watches:
            try:
                await self.registry.register(definition)
            except AlreadyWatching:
                logger.info(f"[{definition.event_id}] Already watching, keeping existing watch")

        if not len(self.registry):
            logger.warning("⚠️ No watches active. Add one with `ticketwatch add` or `run --watch`.")

        try:
            await self.shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("Service cancelled")
        finally:
            await self.registry.shutdown()

        logger.info("✅ Ticket watching stopped")


def configure_logging(level: str = 'INFO') -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )

    # Set log level for Playwright to WARNING to reduce noise
    logging.getLogger('playwright').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
