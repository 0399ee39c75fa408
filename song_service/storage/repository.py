from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Dict, List
from uuid import UUID

from song_service.domain.job_fsm import ensure_transition
from song_service.errors import JobNotFound
from song_service.models.domain import SongJob, SongJobStatus


class SongJobRepository:
    """Keyed job store; every operation is atomic under one lock and hands out copies."""

    def __init__(self) -> None:
        self._jobs: Dict[UUID, SongJob] = {}
        self._lock = Lock()

    def create(self, job: SongJob) -> UUID:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
        return job.id

    def get(self, job_id: UUID) -> SongJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def update(self, job_id: UUID, **fields: Any) -> SongJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(f"song job {job_id} not found")
            status = fields.get("status")
            if status is not None:
                fields["status"] = SongJobStatus(status)
                ensure_transition(job.status, fields["status"])
            updated = job.model_copy(update={**fields, "updated_at": datetime.utcnow()}, deep=True)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def increment(self, job_id: UUID, field: str, amount: int = 1) -> int:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(f"song job {job_id} not found")
            value = getattr(job, field) + amount
            self._jobs[job_id] = job.model_copy(update={field: value})
            return value

    def list(self, owner_id: str | None = None) -> List[SongJob]:
        with self._lock:
            jobs = [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if owner_id is None or job.owner_id == owner_id
            ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs
