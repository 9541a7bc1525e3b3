"""Kafka producer for share click and track events.

One ``EventProducer`` is owned by the ``ServiceManager``: started in the
application lifespan, stopped on shutdown, and handed to the services through
the request context. Publishing is best effort; when the broker could not be
reached at startup every ``publish_*`` call returns False and the caller falls
back to the Redis stream.
"""

import json
import logging

from aiokafka import AIOKafkaProducer

from sharelinks.config import Settings
from sharelinks.schemas import ClickEvent, TrackEvent

__all__ = ["EventProducer"]


class EventProducer:
    def __init__(self, settings: Settings, logger: logging.Logger):
        self._settings = settings
        self._logger = logger
        self._producer: AIOKafkaProducer | None = None

    @property
    def available(self) -> bool:
        return self._producer is not None

    async def start(self) -> None:
        if self._producer is not None:
            return

        producer = AIOKafkaProducer(
            bootstrap_servers=self._settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=lambda payload: json.dumps(payload).encode("utf-8"),
        )
        try:
            await producer.start()
        except Exception as exc:
            self._logger.warning(f"Kafka unavailable at {self._settings.KAFKA_BOOTSTRAP_SERVERS}: {exc}")
            await producer.stop()
            return
        self._producer = producer

    async def stop(self) -> None:
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        await producer.stop()

    async def publish_click(self, event: ClickEvent) -> bool:
        assert event.short_id, "event.short_id must be non-empty"

        if self._producer is None:
            return False

        await self._producer.send_and_wait(
            self._settings.KAFKA_CLICK_TOPIC,
            event.model_dump(mode="json"),
            key=event.short_id.encode("utf-8"),
        )
        return True

    async def publish_track(self, event: TrackEvent) -> bool:
        if self._producer is None:
            return False

        key = (event.app_id or "").encode("utf-8") or None
        await self._producer.send_and_wait(self._settings.KAFKA_TRACK_TOPIC, event.model_dump(mode="json"), key=key)
        return True
