"""Event producer and service manager lifecycle tests."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from sharelinks.config import get_settings
from sharelinks.dependencies import ServiceManager
from sharelinks.kafka import EventProducer
from sharelinks.models import utcnow
from sharelinks.schemas import ClickEvent, TrackEvent

settings = get_settings()
logger = logging.getLogger("sharelinks.tests")


def _click() -> ClickEvent:
    return ClickEvent(short_id="Ab3_x9Qz", referrer="direct", platform="mobile", clicked_at=utcnow())


@pytest.fixture
def kafka_producer() -> AsyncMock:
    producer = AsyncMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()
    producer.send_and_wait = AsyncMock()
    return producer


@pytest.mark.asyncio
async def test_publish_click_after_start(kafka_producer: AsyncMock) -> None:
    events = EventProducer(settings, logger)
    with patch("sharelinks.kafka.AIOKafkaProducer", return_value=kafka_producer):
        await events.start()

    assert events.available
    assert await events.publish_click(_click()) is True
    topic, payload = kafka_producer.send_and_wait.await_args.args
    assert topic == settings.KAFKA_CLICK_TOPIC
    assert payload["short_id"] == "Ab3_x9Qz"
    assert payload["platform"] == "mobile"
    assert kafka_producer.send_and_wait.await_args.kwargs["key"] == b"Ab3_x9Qz"


@pytest.mark.asyncio
async def test_publish_track_after_start(kafka_producer: AsyncMock) -> None:
    events = EventProducer(settings, logger)
    with patch("sharelinks.kafka.AIOKafkaProducer", return_value=kafka_producer):
        await events.start()

    assert await events.publish_track(TrackEvent(user_id="u1", app_id="app-1", kind="copy", tracked_at=utcnow()))
    topic, _payload = kafka_producer.send_and_wait.await_args.args
    assert topic == settings.KAFKA_TRACK_TOPIC
    assert kafka_producer.send_and_wait.await_args.kwargs["key"] == b"app-1"


@pytest.mark.asyncio
async def test_unreachable_broker_leaves_producer_unavailable(kafka_producer: AsyncMock) -> None:
    kafka_producer.start.side_effect = ConnectionError("no broker")
    events = EventProducer(settings, logger)
    with patch("sharelinks.kafka.AIOKafkaProducer", return_value=kafka_producer):
        await events.start()

    assert not events.available
    kafka_producer.stop.assert_awaited_once()
    assert await events.publish_click(_click()) is False
    kafka_producer.send_and_wait.assert_not_awaited()


@pytest.mark.asyncio
async def test_stop_is_idempotent(kafka_producer: AsyncMock) -> None:
    events = EventProducer(settings, logger)
    with patch("sharelinks.kafka.AIOKafkaProducer", return_value=kafka_producer):
        await events.start()

    await events.stop()
    await events.stop()
    kafka_producer.stop.assert_awaited_once()
    assert not events.available


@pytest.mark.asyncio
async def test_service_managers_own_separate_producers(kafka_producer: AsyncMock) -> None:
    with patch("sharelinks.kafka.AIOKafkaProducer", return_value=kafka_producer):
        first, second = ServiceManager(), ServiceManager()
        await first.initialize()
        await second.initialize()

    assert first.events is not second.events
    assert first.events.available

    await first.cleanup()
    assert not first.events.available
    await second.cleanup()
    assert kafka_producer.stop.await_count == 2
