"""Tests for NotificationDispatcher outcome logging."""

from unittest.mock import AsyncMock

import pytest

from feedwatch.notifications.dispatcher import NotificationDispatcher
from feedwatch.notifications.schemas import DeliveryOutcome, DeliveryResult


@pytest.fixture
def channel():
    channel = AsyncMock()
    channel.send.return_value = DeliveryResult(success=True, status_code=200)
    return channel


@pytest.fixture
def outcome_log():
    return AsyncMock()


class TestDeliver:
    @pytest.mark.asyncio
    async def test_success_records_one_outcome(self, channel, outcome_log, video_target, video_item):
        dispatcher = NotificationDispatcher(channel, outcome_log)

        result = await dispatcher.deliver(video_target, video_item, "hello")

        assert result.success is True
        channel.send.assert_awaited_once_with(video_target.webhook_url, "hello")
        outcome_log.append_delivery_outcome.assert_awaited_once()
        outcome: DeliveryOutcome = outcome_log.append_delivery_outcome.call_args.args[0]
        assert outcome.status == "success"
        assert outcome.target_id == video_target.id
        assert outcome.platform == "video-feed"
        assert outcome.content_type == "normal"
        assert outcome.content_id == "v2"
        assert outcome.message == "hello"
        assert outcome.error_detail is None

    @pytest.mark.asyncio
    async def test_failure_records_error_outcome(self, channel, outcome_log, video_target, video_item):
        channel.send.return_value = DeliveryResult(success=False, detail="404 - Unknown Webhook", status_code=404)
        dispatcher = NotificationDispatcher(channel, outcome_log)

        result = await dispatcher.deliver(video_target, video_item, "hello")

        assert result.success is False
        outcome = outcome_log.append_delivery_outcome.call_args.args[0]
        assert outcome.status == "error"
        assert outcome.error_detail == "404 - Unknown Webhook"

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, channel, outcome_log, video_target, video_item):
        channel.send.return_value = DeliveryResult(success=False, detail="500 - oops")
        dispatcher = NotificationDispatcher(channel, outcome_log)

        await dispatcher.deliver(video_target, video_item, "hello")

        assert channel.send.await_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_channel_exception_becomes_error_outcome(
        self, channel, outcome_log, video_target, video_item,
    ):
        channel.send.side_effect = RuntimeError("boom")
        dispatcher = NotificationDispatcher(channel, outcome_log)

        result = await dispatcher.deliver(video_target, video_item, "hello")

        assert result.success is False
        assert result.detail == "RuntimeError: boom"
        assert outcome_log.append_delivery_outcome.call_args.args[0].status == "error"

    @pytest.mark.asyncio
    async def test_log_write_failure_does_not_propagate(
        self, channel, outcome_log, video_target, video_item,
    ):
        outcome_log.append_delivery_outcome.side_effect = ConnectionError("db down")
        dispatcher = NotificationDispatcher(channel, outcome_log)

        result = await dispatcher.deliver(video_target, video_item, "hello")

        assert result.success is True


class TestDeliveryOutcome:
    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError, match="Invalid status"):
            DeliveryOutcome(
                target_id="t", platform="video-feed", content_type="normal",
                message="m", status="pending",
            )

    def test_dict_round_trip_preserves_fields(self):
        outcome = DeliveryOutcome(
            target_id="t", platform="live-stream", content_type="stream",
            message="m", status="error", content_id="s1", error_detail="timeout: read",
        )
        restored = DeliveryOutcome.from_dict(outcome.to_dict())
        assert restored == outcome
