from __future__ import annotations

import json
import logging
import threading
import time
from queue import Queue
from typing import Callable
from uuid import UUID

from kafka import KafkaConsumer, KafkaProducer

log = logging.getLogger(__name__)


class BaseQueue:
    def enqueue(self, job_id: UUID) -> None: ...  # pragma: no cover


class LocalQueue(BaseQueue):
    """In-process queue drained by a small pool of daemon worker threads."""

    def __init__(self, processor: Callable[[UUID], None], workers: int = 4) -> None:
        self._processor = processor
        self._queue: Queue[UUID] = Queue()
        self._threads = [
            threading.Thread(target=self._run, name=f"song-worker-{index}", daemon=True)
            for index in range(max(1, workers))
        ]
        for thread in self._threads:
            thread.start()

    def enqueue(self, job_id: UUID) -> None:
        self._queue.put(job_id)

    def join(self) -> None:
        self._queue.join()

    def _run(self) -> None:
        while True:
            job_id = self._queue.get()
            try:
                self._processor(job_id)
            except Exception:
                log.exception("song job processor crashed", extra={"job_id": str(job_id)})
            finally:
                self._queue.task_done()


class KafkaQueue(BaseQueue):
    """At-least-once dispatch; the processor must tolerate redelivered job ids."""

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        group_id: str,
        processor: Callable[[UUID], None],
    ) -> None:
        self._topic = topic
        self._processor = processor
        self._producer = KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            value_serializer=lambda value: json.dumps(value).encode("utf-8"),
        )
        self._consumer = KafkaConsumer(
            topic,
            bootstrap_servers=bootstrap_servers,
            group_id=group_id,
            auto_offset_reset="earliest",
            enable_auto_commit=True,
            value_deserializer=lambda value: json.loads(value.decode("utf-8")),
        )
        self._thread = threading.Thread(target=self._consume, daemon=True)
        self._thread.start()

    def enqueue(self, job_id: UUID) -> None:
        payload = {"job_id": str(job_id), "ts": time.time()}
        self._producer.send(self._topic, payload)
        self._producer.flush()

    def _consume(self) -> None:
        for message in self._consumer:
            try:
                job_id = UUID(message.value["job_id"])
            except (KeyError, TypeError, ValueError):
                log.warning("malformed song job message skipped", extra={"offset": message.offset})
                continue
            try:
                self._processor(job_id)
            except Exception:  # pragma: no cover - best effort logging
                log.exception("song job processor crashed", extra={"job_id": str(job_id)})
