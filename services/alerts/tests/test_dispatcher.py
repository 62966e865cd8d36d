"""
Tests for the alert dispatcher.

Validates throttling, destination checks, channel isolation for render
and send failures, and throttle updates after each dispatch.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import LockNotOwnedError

from alerts.dispatcher import AlertDispatcher
from alerts.errors import ChannelSendError, MalformedEventError, RenderError
from alerts.report import DeliveryStatus, DispatchOutcome
from alerts.throttle import InMemoryAlertThrottle, RedisAlertThrottle
from jw_common.models import AlertKind
from jw_common.utils import to_epoch_ms


@pytest.fixture()
def throttle() -> InMemoryAlertThrottle:
    return InMemoryAlertThrottle(cooldown_ms=300_000)


@pytest.fixture()
def email(make_channel):
    return make_channel("email", bulk=True)


@pytest.fixture()
def webhook(make_channel):
    return make_channel("webhook")


@pytest.fixture()
def dispatcher(throttle, email, webhook) -> AlertDispatcher:
    return AlertDispatcher(throttle, [email, webhook], resource_manager_url="http://rm:8088")


# ── throttling ──


class TestThrottling:
    """Tests for the per-job cool-down."""

    async def test_first_alert_dispatched(self, dispatcher, make_event, t0, email, webhook) -> None:
        report = await dispatcher.dispatch(make_event(state="FAILING"), now=t0)

        assert report.outcome == DispatchOutcome.DISPATCHED
        assert report.kind == AlertKind.STATE_CHANGE
        assert report.delivered_to == ["email", "webhook"]
        email.send.assert_awaited_once()
        webhook.send.assert_awaited_once()

    async def test_cooldown_timeline(self, dispatcher, make_event, t0, webhook) -> None:
        event = make_event(state="FAILING")

        first = await dispatcher.dispatch(event, now=t0)
        second = await dispatcher.dispatch(event, now=t0 + timedelta(seconds=100))
        third = await dispatcher.dispatch(event, now=t0 + timedelta(seconds=300))

        assert first.outcome == DispatchOutcome.DISPATCHED
        assert second.outcome == DispatchOutcome.SUPPRESSED
        assert second.deliveries == []
        assert third.outcome == DispatchOutcome.DISPATCHED
        assert webhook.send.await_count == 2

    async def test_suppressed_does_not_touch_channels(
        self, dispatcher, throttle, make_event, t0, email,
    ) -> None:
        await throttle.record("1", to_epoch_ms(t0))
        report = await dispatcher.dispatch(make_event(state="FAILING"), now=t0 + timedelta(seconds=1))
        assert report.outcome == DispatchOutcome.SUPPRESSED
        email.targets.assert_not_awaited()
        email.render.assert_not_called()

    async def test_non_terminal_state_records(self, dispatcher, throttle, make_event, t0) -> None:
        await dispatcher.dispatch(make_event(state="RESTARTING"), now=t0)
        assert "1" in throttle
        assert await throttle.allow("1", to_epoch_ms(t0) + 1) is False

    @pytest.mark.parametrize("state", ["FAILED", "CANCELED", "LOST"])
    async def test_terminal_state_clears(
        self, dispatcher, throttle, make_event, t0, state,
    ) -> None:
        await throttle.record("2", to_epoch_ms(t0) - 400_000)
        report = await dispatcher.dispatch(make_event(entity_id="2", state=state), now=t0)
        assert report.outcome == DispatchOutcome.DISPATCHED
        assert "2" not in throttle

    async def test_terminal_then_new_failure_not_suppressed(
        self, dispatcher, make_event, t0,
    ) -> None:
        await dispatcher.dispatch(make_event(entity_id="2", state="FAILED"), now=t0)
        report = await dispatcher.dispatch(
            make_event(entity_id="2", state="FAILING"),
            now=t0 + timedelta(seconds=10),
        )
        assert report.outcome == DispatchOutcome.DISPATCHED

    async def test_repeated_failure_one_ms_later_sent_again(
        self, dispatcher, throttle, make_event, t0, webhook,
    ) -> None:
        event = make_event(entity_id="2", state="FAILED")

        first = await dispatcher.dispatch(event, now=t0)
        second = await dispatcher.dispatch(event, now=t0 + timedelta(milliseconds=1))

        assert first.outcome == DispatchOutcome.DISPATCHED
        assert second.outcome == DispatchOutcome.DISPATCHED
        assert webhook.send.await_count == 2
        assert "2" not in throttle

    async def test_entities_throttled_independently(self, dispatcher, make_event, t0) -> None:
        await dispatcher.dispatch(make_event(entity_id="a", state="FAILING"), now=t0)
        report = await dispatcher.dispatch(
            make_event(entity_id="b", state="FAILING"),
            now=t0 + timedelta(seconds=1),
        )
        assert report.outcome == DispatchOutcome.DISPATCHED


# ── destinations ──


class TestDestinations:
    """Tests for events without anywhere to send to."""

    async def test_no_destinations(self, dispatcher, throttle, make_event, t0, email, webhook) -> None:
        event = make_event(state="FAILING", alert_emails=None, alert_webhooks=None)
        report = await dispatcher.dispatch(event, now=t0)

        assert report.outcome == DispatchOutcome.NO_DESTINATIONS
        assert "1" not in throttle
        email.render.assert_not_called()
        webhook.send.assert_not_awaited()

    async def test_only_channels_with_targets_used(
        self, dispatcher, make_event, t0, email, webhook,
    ) -> None:
        report = await dispatcher.dispatch(make_event(alert_emails=[]), now=t0)
        assert report.delivered_to == ["webhook"]
        email.render.assert_not_called()

    async def test_targets_failure_skips_channel(
        self, dispatcher, make_event, t0, email, webhook,
    ) -> None:
        email.targets.side_effect = RuntimeError("sender lookup failed")
        report = await dispatcher.dispatch(make_event(), now=t0)
        assert report.outcome == DispatchOutcome.DISPATCHED
        assert report.delivered_to == ["webhook"]

    async def test_malformed_event_propagates(
        self, dispatcher, throttle, make_event, t0, email, webhook,
    ) -> None:
        with pytest.raises(MalformedEventError):
            await dispatcher.dispatch(make_event(state="FAILING", start_time=None), now=t0)
        assert "1" not in throttle
        email.send.assert_not_awaited()
        webhook.send.assert_not_awaited()


# ── channel isolation ──


class TestChannelIsolation:
    """A failing channel never affects the others."""

    async def test_email_render_failure_does_not_block_webhook(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        email = make_channel("email", bulk=True, render_exc=RenderError("email", "bad template"))
        webhook = make_channel("webhook")
        dispatcher = AlertDispatcher(throttle, [email, webhook])

        report = await dispatcher.dispatch(make_event(), now=t0)

        webhook.send.assert_awaited_once()
        email.send.assert_not_awaited()
        statuses = {r.channel: r.status for r in report.deliveries}
        assert statuses == {
            "email": DeliveryStatus.RENDER_FAILED,
            "webhook": DeliveryStatus.DELIVERED,
        }

    async def test_webhook_render_failure_does_not_block_email(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        email = make_channel("email", bulk=True)
        webhook = make_channel("webhook", render_exc=RenderError("webhook", "bad card"))
        dispatcher = AlertDispatcher(throttle, [email, webhook])

        report = await dispatcher.dispatch(make_event(), now=t0)

        email.send.assert_awaited_once()
        assert report.delivered_to == ["email"]
        assert [f.channel for f in report.failures] == ["webhook"]

    async def test_send_failure_reported_and_throttle_updated(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel(
            "webhook",
            send_exc=ChannelSendError("webhook", "https://h", "HTTP 500"),
        )
        dispatcher = AlertDispatcher(throttle, [webhook])

        report = await dispatcher.dispatch(make_event(state="FAILING"), now=t0)

        assert report.outcome == DispatchOutcome.DISPATCHED
        assert report.failures[0].status == DeliveryStatus.SEND_FAILED
        assert "1" in throttle

    async def test_unexpected_send_error_reported(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel("webhook", send_exc=RuntimeError("boom"))
        dispatcher = AlertDispatcher(throttle, [webhook])

        report = await dispatcher.dispatch(make_event(), now=t0)

        assert report.failures[0].status == DeliveryStatus.ERROR
        assert "boom" in report.failures[0].error

    async def test_unexpected_render_error_reported(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel("webhook", render_exc=ValueError("bad"))
        dispatcher = AlertDispatcher(throttle, [webhook])

        report = await dispatcher.dispatch(make_event(), now=t0)

        assert report.failures[0].status == DeliveryStatus.ERROR

    async def test_webhook_urls_sent_separately(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel("webhook")
        calls: list[list[str]] = []

        async def _send(payload, targets):
            calls.append(targets)
            if targets == ["https://h/bad"]:
                raise ChannelSendError("webhook", "https://h/bad", "HTTP 404")

        webhook.send.side_effect = _send
        dispatcher = AlertDispatcher(throttle, [webhook])
        event = make_event(alert_webhooks=["https://h/bad", "https://h/good"])

        report = await dispatcher.dispatch(event, now=t0)

        assert sorted(calls) == [["https://h/bad"], ["https://h/good"]]
        by_target = {r.targets[0]: r.status for r in report.deliveries}
        assert by_target == {
            "https://h/bad": DeliveryStatus.SEND_FAILED,
            "https://h/good": DeliveryStatus.DELIVERED,
        }
        webhook.render.assert_called_once()

    async def test_bulk_channel_sends_once(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        email = make_channel("email", bulk=True)
        dispatcher = AlertDispatcher(throttle, [email])

        await dispatcher.dispatch(make_event(alert_emails="a@x.com,b@x.com"), now=t0)

        email.send.assert_awaited_once_with({"channel": "email"}, ["a@x.com", "b@x.com"])

    async def test_checkpoint_kind_reported(self, dispatcher, make_event, t0) -> None:
        report = await dispatcher.dispatch(
            make_event(state="RUNNING", checkpoint_failed=True), now=t0,
        )
        assert report.kind == AlertKind.CHECKPOINT_FAILURE


# ── concurrency ──


class TestConcurrency:
    """Tests for concurrent events."""

    async def test_same_entity_dispatched_once(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel("webhook")

        async def _slow_send(payload, targets):
            await asyncio.sleep(0.01)

        webhook.send.side_effect = _slow_send
        dispatcher = AlertDispatcher(throttle, [webhook])
        event = make_event(state="FAILING")

        reports = await asyncio.gather(
            dispatcher.dispatch(event, now=t0),
            dispatcher.dispatch(event, now=t0 + timedelta(milliseconds=5)),
        )

        outcomes = sorted(r.outcome.value for r in reports)
        assert outcomes == ["dispatched", "suppressed"]
        webhook.send.assert_awaited_once()

    async def test_other_entity_not_blocked(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel("webhook")
        gate = asyncio.Event()

        async def _send(payload, targets):
            if targets == ["https://slow"]:
                await gate.wait()

        webhook.send.side_effect = _send
        dispatcher = AlertDispatcher(throttle, [webhook])

        slow = asyncio.create_task(
            dispatcher.dispatch(make_event(entity_id="slow", alert_webhooks=["https://slow"]), now=t0),
        )
        await asyncio.sleep(0)

        fast = await asyncio.wait_for(
            dispatcher.dispatch(make_event(entity_id="fast", alert_webhooks=["https://fast"]), now=t0),
            timeout=1.0,
        )
        assert fast.outcome == DispatchOutcome.DISPATCHED
        assert not slow.done()

        gate.set()
        assert (await slow).outcome == DispatchOutcome.DISPATCHED


# ── lifecycle ──


class TestClose:

    async def test_close_closes_channels(self, dispatcher, email, webhook) -> None:
        await dispatcher.close()
        email.close.assert_awaited_once()
        webhook.close.assert_awaited_once()


# ── time limits and lock housekeeping ──


class TestTimeLimits:
    """Tests for bounded sends and throttle lock handling."""

    async def test_slow_send_reported_as_failed(
        self, throttle, make_channel, make_event, t0,
    ) -> None:
        webhook = make_channel("webhook")
        email = make_channel("email", bulk=True)

        async def _hang(payload, targets):
            await asyncio.sleep(5)

        webhook.send.side_effect = _hang
        dispatcher = AlertDispatcher(throttle, [email, webhook], send_timeout_s=0.05)

        report = await asyncio.wait_for(
            dispatcher.dispatch(make_event(state="FAILING"), now=t0), timeout=2.0,
        )

        statuses = {r.channel: r.status for r in report.deliveries}
        assert statuses == {
            "email": DeliveryStatus.DELIVERED,
            "webhook": DeliveryStatus.SEND_FAILED,
        }
        assert "timed out" in report.failures[0].error
        assert "1" in throttle

    async def test_expired_redis_lock_keeps_report(
        self, mock_redis, make_channel, make_event, t0,
    ) -> None:
        mock_redis.lock.return_value.release = AsyncMock(
            side_effect=LockNotOwnedError("Cannot release a lock that's no longer owned"),
        )
        throttle = RedisAlertThrottle(mock_redis, lock_timeout_s=0.05)
        webhook = make_channel("webhook")

        async def _slow(payload, targets):
            await asyncio.sleep(0.1)

        webhook.send.side_effect = _slow
        dispatcher = AlertDispatcher(throttle, [webhook])

        report = await dispatcher.dispatch(make_event(state="FAILING"), now=t0)

        assert report.outcome == DispatchOutcome.DISPATCHED
        assert report.delivered_to == ["webhook"]
        mock_redis.set.assert_awaited_once()

    async def test_no_lock_left_behind_per_job(self, throttle, make_channel, make_event, t0) -> None:
        dispatcher = AlertDispatcher(throttle, [make_channel("webhook")])
        for n in range(1000):
            await dispatcher.dispatch(make_event(entity_id=f"job-{n}", state="FAILED"), now=t0)
        assert len(throttle) == 0
        assert throttle._locks == {}
