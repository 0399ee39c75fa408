from __future__ import annotations

import json
import logging
from typing import Any

from kafka import KafkaProducer

from song_service.models.domain import SongJob


def song_event_payload(event: str, job: SongJob) -> dict[str, Any]:
    """Compact song event; prompts and lyrics stay out of the topic."""
    return {
        "event": event,
        "job_id": str(job.id),
        "owner_id": job.owner_id,
        "title": job.title,
        "status": job.status.value,
        "published": job.published,
        "guidance_scale": job.guidance_scale,
        "audio_duration": job.audio_duration,
        "created_at": job.created_at.isoformat(),
    }


class JobEventPublisher:
    """Announces song job events on Kafka, keyed by owner so one user's events stay ordered."""

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        logger: logging.Logger | None = None,
        producer: Any = None,
    ) -> None:
        if not topic:
            raise ValueError("topic is required")
        if producer is None and not bootstrap_servers:
            raise ValueError("bootstrap_servers is required")
        self._topic = topic
        self._logger = logger or logging.getLogger(__name__)
        self._producer = producer or KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda payload: json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            linger_ms=5,
        )

    def publish_job(self, event: str, job: SongJob) -> None:
        try:
            self._producer.send(self._topic, key=job.owner_id, value=song_event_payload(event, job))
        except Exception:
            self._logger.warning(
                "failed to publish song event",
                extra={"job_id": str(job.id), "event": event, "topic": self._topic},
                exc_info=True,
            )

    def close(self) -> None:
        try:
            self._producer.flush()
            self._producer.close()
        except Exception:
            self._logger.debug("song event publisher close failed", exc_info=True)
