"""Tests for the watch loop."""
import asyncio
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ticketmaster_resale_watch.models import FetchEmpty, FetchError, FetchSuccess, LoopConfig
from ticketmaster_resale_watch.watcher import WatchLoop

from .fakes import (
    EMPTY_RESPONSE,
    FakeSession,
    FakeSessionFactory,
    resale_response,
    wait_until,
)

PRIMARY_ONLY = resale_response([{"type": "primary", "price": {"total": 5000}, "quantities": [1]}])


def make_loop(definition, loop_config, session=None, handler=None, factory=None, on_session_lost=None):
    factory = factory or FakeSessionFactory(make_session=lambda: session or FakeSession())
    loop = WatchLoop(
        definition,
        handler or AsyncMock(),
        config=loop_config,
        session_factory=factory,
        on_session_lost=on_session_lost,
    )
    return loop, factory


class TestCheckOnce:
    """A single navigate/fetch/evaluate cycle."""

    @pytest.mark.asyncio
    async def test_tickets_found_invokes_handler(self, definition, loop_config, two_offer_payload):
        session = FakeSession([resale_response(two_offer_payload)])
        handler = AsyncMock()
        loop, _ = make_loop(definition, loop_config, session, handler)

        report = await loop.check_once()

        handler.assert_awaited_once_with(report)
        assert report.total_tickets == 5
        assert report.cheapest_price == 90.0
        assert loop.notified is True
        assert session.navigations == [definition.event_url]

    @pytest.mark.asyncio
    async def test_handler_fires_only_once(self, definition, loop_config, two_offer_payload):
        more = two_offer_payload + [{"type": "resale", "price": {"total": 100}, "quantities": [8]}]
        session = FakeSession([resale_response(two_offer_payload), resale_response(more)])
        handler = AsyncMock()
        loop, _ = make_loop(definition, loop_config, session, handler)

        await loop.check_once()
        second = await loop.check_once()
        third = await loop.check_once()

        assert second is None
        assert third is None
        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_wrong_kind_does_not_invoke_handler(self, definition, loop_config):
        handler = AsyncMock()
        loop, _ = make_loop(definition, loop_config, FakeSession([PRIMARY_ONLY]), handler)

        assert await loop.check_once() is None
        handler.assert_not_awaited()
        assert loop.notified is False

    @pytest.mark.asyncio
    async def test_navigation_timeout_skips_fetch(self, definition, loop_config):
        session = FakeSession(navigate_error=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        handler = AsyncMock()
        loop, _ = make_loop(definition, loop_config, session, handler)

        assert await loop.check_once() is None
        assert session.evaluations == 0
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigation_error_is_recoverable(self, definition, loop_config):
        session = FakeSession(navigate_error=PlaywrightError("net::ERR_CONNECTION_RESET"))
        loop, _ = make_loop(definition, loop_config, session)

        assert await loop.check_once() is None
        assert await loop.check_once() is None
        assert len(session.navigations) == 2

    @pytest.mark.asyncio
    async def test_handler_error_does_not_escape(self, definition, loop_config, two_offer_payload):
        handler = AsyncMock(side_effect=RuntimeError("discord down"))
        loop, _ = make_loop(definition, loop_config, FakeSession([resale_response(two_offer_payload)]), handler)

        report = await loop.check_once()

        assert report is not None
        assert loop.notified is True

    @pytest.mark.asyncio
    async def test_session_launch_failure_is_retried(self, definition, loop_config):
        factory = FakeSessionFactory(fail_for={1})
        loop, _ = make_loop(definition, loop_config, factory=factory)

        assert await loop.check_once() is None
        assert loop.session is None

        await loop.check_once()
        assert factory.calls == 2
        assert loop.session is factory.sessions[0]


class TestFetchResaleData:
    """The in-page fetch and its tagged results."""

    @pytest.mark.asyncio
    async def test_success(self, definition, loop_config, two_offer_payload):
        loop, _ = make_loop(definition, loop_config)
        loop.session = FakeSession([resale_response(two_offer_payload)])

        result = await loop.fetch_resale_data()

        assert isinstance(result, FetchSuccess)
        assert result.data == {"offers": two_offer_payload}

    @pytest.mark.asyncio
    async def test_non_ok_status_is_empty(self, definition, loop_config):
        loop, _ = make_loop(definition, loop_config)
        loop.session = FakeSession([{"ok": False, "reason": "HTTP 403"}])

        result = await loop.fetch_resale_data()

        assert result == FetchEmpty(reason="HTTP 403")

    @pytest.mark.asyncio
    async def test_null_body_is_empty(self, definition, loop_config):
        loop, _ = make_loop(definition, loop_config)
        loop.session = FakeSession([{"ok": True, "data": None}])

        assert isinstance(await loop.fetch_resale_data(), FetchEmpty)

    @pytest.mark.asyncio
    async def test_context_destroyed_is_error(self, definition, loop_config):
        loop, _ = make_loop(definition, loop_config)
        loop.session = FakeSession([
            PlaywrightError("Execution context was destroyed, most likely because of a navigation")
        ])

        result = await loop.fetch_resale_data()

        assert isinstance(result, FetchError)
        assert "Execution context was destroyed" in result.reason

    @pytest.mark.asyncio
    async def test_passes_resale_url_to_page(self, definition, loop_config):
        loop, _ = make_loop(definition, loop_config)
        loop.session = AsyncMock()
        loop.session.evaluate.return_value = EMPTY_RESPONSE

        await loop.fetch_resale_data()

        args, _ = loop.session.evaluate.await_args
        assert args[1] == (
            "https://availability.ticketmaster.no/api/v2/TM_NO/resale/1A0056D9A5E43E3F"
        )


class TestEvaluate:

    def test_suppressed_once_notified(self, definition, loop_config, two_offer_payload):
        loop, _ = make_loop(definition, loop_config)

        assert loop.evaluate({"offers": two_offer_payload}) is not None
        assert loop.evaluate({"offers": two_offer_payload}) is None

    def test_no_offers(self, definition, loop_config):
        loop, _ = make_loop(definition, loop_config)

        assert loop.evaluate({"offers": []}) is None
        assert loop.notified is False


class TestLifecycle:
    """Starting, stopping and self-termination of the loop task."""

    @pytest.mark.asyncio
    async def test_keeps_running_through_empty_cycles(self, definition, loop_config):
        session = FakeSession([EMPTY_RESPONSE])
        handler = AsyncMock()
        loop, _ = make_loop(definition, loop_config, session, handler)
        loop.interval_seconds = 0.001

        await loop.start()
        await wait_until(lambda: session.evaluations >= 10)

        assert loop.is_alive
        assert loop.running is True
        handler.assert_not_awaited()

        await loop.stop()
        assert session.closed is True

    @pytest.mark.asyncio
    async def test_start_does_not_wait_for_first_check(self, definition, loop_config):
        session = FakeSession(navigate_delay=10)
        loop, _ = make_loop(definition, loop_config, session)

        await asyncio.wait_for(loop.start(), timeout=0.5)
        assert loop.is_alive

        await loop.stop()

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, definition, loop_config):
        loop, factory = make_loop(definition, loop_config)
        loop.interval_seconds = 60

        await loop.start()
        first_task = loop._task
        await loop.start()

        assert loop._task is first_task
        await loop.stop()

    @pytest.mark.asyncio
    async def test_stops_itself_after_alert(self, definition, loop_config, two_offer_payload):
        session = FakeSession([resale_response(two_offer_payload)])
        handler = AsyncMock()
        loop, _ = make_loop(definition, loop_config, session, handler)

        await loop.start()
        await wait_until(lambda: session.closed)

        assert loop.running is False
        assert not loop.is_alive
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_keep_polling_after_alert(self, definition, two_offer_payload):
        config = LoopConfig(settle_delay=0, stop_timeout=0.2, keep_polling_after_alert=True)
        session = FakeSession([resale_response(two_offer_payload)])
        handler = AsyncMock()
        loop, _ = make_loop(definition, config, session, handler)
        loop.interval_seconds = 0.001

        await loop.start()
        await wait_until(lambda: session.evaluations >= 5)

        assert loop.is_alive
        handler.assert_awaited_once()
        await loop.stop()

    @pytest.mark.asyncio
    async def test_stop_from_inside_handler(self, definition, two_offer_payload):
        config = LoopConfig(settle_delay=0, stop_timeout=0.2, keep_polling_after_alert=True)
        session = FakeSession([resale_response(two_offer_payload)])
        loop = None

        async def handler(report):
            await loop.stop()

        loop, _ = make_loop(definition, config, session, handler)
        loop.interval_seconds = 60

        await loop.start()
        await wait_until(lambda: session.closed)

        assert session.evaluations == 1
        assert not loop.is_alive

    @pytest.mark.asyncio
    async def test_disconnected_session_stops_loop(self, definition, loop_config):
        lost = []
        session = FakeSession([EMPTY_RESPONSE])
        loop, _ = make_loop(definition, loop_config, session, on_session_lost=lost.append)
        loop.interval_seconds = 0.001

        await loop.start()
        await wait_until(lambda: session.evaluations >= 1)
        session.connected = False
        await wait_until(lambda: not loop.is_alive)

        assert lost == [definition.event_id]
        assert loop.running is False
        assert session.closed is True

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, definition, loop_config):
        session = FakeSession()
        loop, _ = make_loop(definition, loop_config, session)
        loop.interval_seconds = 60

        await loop.start()
        await wait_until(lambda: session.evaluations >= 1)
        await loop.stop()
        await loop.stop()

        assert loop.running is False
        assert session.closed is True

    @pytest.mark.asyncio
    async def test_stop_before_start(self, definition, loop_config):
        loop, factory = make_loop(definition, loop_config)

        await loop.stop()

        assert factory.calls == 0
        assert loop.running is False

    @pytest.mark.asyncio
    async def test_stop_interrupts_sleep(self, definition, loop_config):
        session = FakeSession()
        loop, _ = make_loop(definition, loop_config, session)
        loop.interval_seconds = 3600

        await loop.start()
        await wait_until(lambda: session.evaluations >= 1)
        await asyncio.wait_for(loop.stop(), timeout=1.0)

        assert loop._task.done()

    @pytest.mark.asyncio
    async def test_stop_cancels_hung_navigation(self, definition, loop_config):
        session = FakeSession(navigate_delay=3600)
        loop, _ = make_loop(definition, loop_config, session)

        await loop.start()
        await wait_until(lambda: session.navigations)
        await asyncio.wait_for(loop.stop(), timeout=2.0)

        assert loop._task.done()
        assert session.closed is True

    @pytest.mark.asyncio
    async def test_stop_abandons_hung_close(self, definition, loop_config):
        session = FakeSession(close_delay=3600)
        loop, _ = make_loop(definition, loop_config, session)
        loop.interval_seconds = 3600

        await loop.start()
        await wait_until(lambda: session.evaluations >= 1)
        await asyncio.wait_for(loop.stop(), timeout=3.0)

        assert loop.session is None
