"""
Polling loop that watches one event for resale tickets.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import BrowserSession, launch_session
from .detection import build_report, parse_offers
from .models import (
    FetchEmpty,
    FetchError,
    FetchResult,
    FetchSuccess,
    LoopConfig,
    SessionConfig,
    TicketAvailabilityReport,
    WatchDefinition,
)

logger = logging.getLogger(__name__)

ReportHandler = Callable[[TicketAvailabilityReport], Awaitable[None]]
SessionFactory = Callable[[SessionConfig], Awaitable[BrowserSession]]
SessionLostHandler = Callable[[str], None]

# Runs inside the page so the session's cookies go along with the request.
FETCH_RESALE_SCRIPT = """
async (url) => {
    try {
        const response = await fetch(url, {
            method: "GET",
            headers: { Accept: "application/json" },
            credentials: "include",
        });
        if (!response.ok) {
            return { ok: false, reason: `HTTP ${response.status}` };
        }
        return { ok: true, data: await response.json() };
    } catch (e) {
        return { ok: false, reason: String(e) };
    }
}
"""

_CONTEXT_GONE_MARKERS = (
    "Execution context was destroyed",
    "Target closed",
    "Target page, context or browser has been closed",
)


class WatchLoop:
    """Repeatedly checks one event's resale inventory and reports it once."""

    def __init__(
        self,
        definition: WatchDefinition,
        on_report: ReportHandler,
        config: Optional[LoopConfig] = None,
        session_config: Optional[SessionConfig] = None,
        session_factory: SessionFactory = launch_session,
        on_session_lost: Optional[SessionLostHandler] = None,
    ):
        self.definition = definition
        self.config = config or LoopConfig()
        self.session_config = session_config or SessionConfig()
        self.interval_seconds = definition.poll_minutes * 60
        self.running = False
        self.notified = False
        self.check_count = 0
        self.session: Optional[BrowserSession] = None

        self._on_report = on_report
        self._session_factory = session_factory
        self._on_session_lost = on_session_lost
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

    @property
    def event_id(self) -> str:
        return self.definition.event_id

    @property
    def is_alive(self) -> bool:
        """True while the loop is armed and its task has not finished."""
        return self.running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Arm the loop and schedule it; returns without waiting for the first check."""
        if self.running:
            return
        self.running = True
        self._wake.clear()
        self._task = asyncio.create_task(self._run(), name=f"watch-{self.event_id}")
        logger.info(
            f"[{self.event_id}] 👀 Watching {self.definition.event_url} "
            f"(check every {self.definition.poll_minutes}m)"
        )

    async def stop(self) -> None:
        """Stop the loop and release its browser session.

        Safe to call repeatedly and from inside the report handler. Waits at
        most ``stop_timeout`` seconds for the loop to finish before cancelling it.
        """
        self.running = False
        self._wake.set()

        task = self._task
        if task is not None and task is asyncio.current_task():
            # The loop releases its own session once the handler returns
            return

        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=self.config.stop_timeout)
            if not done:
                logger.warning(
                    f"[{self.event_id}] Loop did not stop within {self.config.stop_timeout}s, cancelling"
                )
                task.cancel()
                done, _ = await asyncio.wait({task}, timeout=self.config.stop_timeout)
                if not done:
                    logger.error(f"[{self.event_id}] Loop ignored cancellation, abandoning it")

        await self._release_session()

    async def _run(self) -> None:
        try:
            while self.running:
                try:
                    await self.check_once()
                except Exception as e:
                    logger.error(f"[{self.event_id}] Error during check: {e}", exc_info=True)

                if not self.running:
                    break

                if self.session is not None and not self.session.is_connected():
                    logger.error(f"[{self.event_id}] ❌ Browser session disconnected, stopping watch")
                    self.running = False
                    if self._on_session_lost:
                        self._on_session_lost(self.event_id)
                    break

                if self.notified and not self.config.keep_polling_after_alert:
                    logger.info(f"[{self.event_id}] Alert delivered, stopping watch")
                    self.running = False
                    break

                await self._wait(self.interval_seconds)
        except asyncio.CancelledError:
            logger.debug(f"[{self.event_id}] Watch loop cancelled")
            raise
        finally:
            await self._release_session()
            logger.info(f"[{self.event_id}] ✅ Watch loop finished after {self.check_count} check(s)")

    async def check_once(self) -> Optional[TicketAvailabilityReport]:
        """Run one navigate/fetch/evaluate cycle.

        Returns the report if this cycle triggered the alert.
        """
        self.check_count += 1
        logger.info(
            f"[{self.event_id}] 🔄 Check #{self.check_count} at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
        )

        if self.session is None:
            try:
                self.session = await self._session_factory(self.session_config)
            except Exception as e:
                logger.error(f"[{self.event_id}] Could not launch browser session: {e}")
                return None

        if await self._navigate():
            # Inventory is populated asynchronously after page load
            await asyncio.sleep(self.config.settle_delay)
            result = await self.fetch_resale_data()
        else:
            result = FetchEmpty(reason="navigation failed")

        return await self._handle_result(result)

    async def _navigate(self) -> bool:
        try:
            await self.session.navigate(
                self.definition.event_url,
                wait_until="networkidle",
                timeout_ms=self.config.navigation_timeout * 1000,
            )
            return True
        except PlaywrightTimeoutError:
            logger.warning(
                f"[{self.event_id}] ⏳ Navigation timed out after {self.config.navigation_timeout}s"
            )
        except PlaywrightError as e:
            logger.warning(f"[{self.event_id}] ⚠️ Navigation failed: {e}")
        return False

    async def fetch_resale_data(self) -> FetchResult:
        """Fetch the resale resource from inside the page."""
        try:
            outcome: Any = await self.session.evaluate(
                FETCH_RESALE_SCRIPT, self.definition.resale_api_url
            )
        except PlaywrightError as e:
            message = str(e)
            if any(marker in message for marker in _CONTEXT_GONE_MARKERS):
                logger.warning(
                    f"[{self.event_id}] Page navigated during evaluation, will retry next cycle"
                )
            else:
                logger.warning(f"[{self.event_id}] ⚠️ Resale fetch failed: {message}")
            return FetchError(reason=message)

        if not isinstance(outcome, dict) or not outcome.get("ok"):
            reason = outcome.get("reason", "request failed") if isinstance(outcome, dict) else "request failed"
            return FetchEmpty(reason=reason)
        if outcome.get("data") is None:
            return FetchEmpty(reason="empty body")
        return FetchSuccess(data=outcome["data"])

    def evaluate(self, data: Any) -> Optional[TicketAvailabilityReport]:
        """Apply the availability decision to one resale response.

        Returns a report only the first time tickets are seen.
        """
        if self.notified:
            return None
        report = build_report(self.event_id, parse_offers(data))
        if report is None:
            return None
        self.notified = True
        return report

    async def _handle_result(self, result: FetchResult) -> Optional[TicketAvailabilityReport]:
        if isinstance(result, FetchError):
            return None
        if isinstance(result, FetchEmpty):
            logger.info(f"[{self.event_id}] ❌ No resale data ({result.reason})")
            return None

        report = self.evaluate(result.data)
        if report is None:
            logger.info(f"[{self.event_id}] ❌ No resale tickets available")
            return None

        logger.warning(
            f"[{self.event_id}] 🎉 TICKETS AVAILABLE: {report.total_tickets} ticket(s) "
            f"across {report.offer_count} offer(s), max {report.max_bundle_size} per seller, "
            f"cheapest {report.cheapest_price:.2f} NOK "
            f"(quantities {', '.join(str(q) for q in report.cheapest_quantities)})"
        )
        try:
            await self._on_report(report)
        except Exception as e:
            logger.error(f"[{self.event_id}] Report handler failed: {e}", exc_info=True)
        return report

    async def _wait(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until ``stop()`` is called."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _release_session(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return
        timeout = self.config.stop_timeout
        try:
            await asyncio.wait_for(session.close(timeout=timeout), timeout=timeout + 1)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.event_id}] Browser session did not close within {timeout}s, abandoning it")
        except Exception as e:
            logger.warning(f"[{self.event_id}] Error closing browser session: {e}")
