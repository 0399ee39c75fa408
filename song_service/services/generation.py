from __future__ import annotations

import logging
from typing import Any
from uuid import UUID, uuid4

from song_service.clients.assets import AssetStore
from song_service.clients.render_backend import RenderBackendClient
from song_service.config import Settings
from song_service.errors import (
    JobNotFound,
    JobTransitionError,
    SongServiceError,
    Unauthorized,
)
from song_service.events.publisher import JobEventPublisher
from song_service.models.domain import GenerationInputs, RenderResult, SongJob, SongJobStatus
from song_service.queue.queue import BaseQueue
from song_service.services.asset_fallback import CatalogFallback
from song_service.storage.repository import SongJobRepository


def derive_title(inputs: GenerationInputs) -> str:
    for candidate in (inputs.full_described_song, inputs.described_lyrics):
        text = (candidate or "").strip()
        if text:
            return text[0].upper() + text[1:]
    return "Untitled"


class GenerationOrchestrator:
    """Creates song jobs and drives them from ``processing`` to a terminal status."""

    def __init__(
        self,
        repo: SongJobRepository,
        settings: Settings,
        render: RenderBackendClient,
        assets: AssetStore,
        fallback: CatalogFallback,
        events: JobEventPublisher | None = None,
    ) -> None:
        self.repo = repo
        self.settings = settings
        self.render = render
        self.assets = assets
        self.fallback = fallback
        self.events = events
        self.queue: BaseQueue | None = None
        self.log = logging.getLogger(__name__)

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def submit(self, inputs: GenerationInputs, owner_id: str, guidance_scale: float | None = None) -> SongJob:
        job = SongJob(
            id=uuid4(),
            owner_id=owner_id,
            title=derive_title(inputs),
            inputs=inputs,
            guidance_scale=guidance_scale if guidance_scale is not None else self.settings.default_guidance_scale,
            audio_duration=self.settings.audio_duration,
            status=SongJobStatus.PROCESSING,
        )
        self.repo.create(job)
        self.log.info("song job created", extra={"job_id": str(job.id), "owner_id": owner_id})
        if self.queue is not None:
            self.queue.enqueue(job.id)
        self._emit_job_event("song.submitted", job)
        return job

    def process_job(self, job_id: UUID) -> None:
        job = self.repo.get(job_id)
        if not job:
            self.log.warning("song job vanished before processing", extra={"job_id": str(job_id)})
            return
        if job.status != SongJobStatus.PROCESSING:
            self.log.info(
                "song job already settled, skipping",
                extra={"job_id": str(job_id), "status": job.status.value},
            )
            return
        try:
            request = self.render.build_request(job.inputs, job.guidance_scale)
            result = self.render.invoke(request, deadline=self.settings.render_timeout_seconds)
            self._apply_result(job, result)
        except Exception as exc:
            if isinstance(exc, SongServiceError):
                self.log.error(
                    "song generation failed",
                    extra={"job_id": str(job_id), "kind": exc.kind.value, "error": exc.message},
                )
            else:
                self.log.exception("song generation failed", extra={"job_id": str(job_id)})
            self._mark_failed(job_id, str(exc))

    def get_job(self, job_id: UUID, requester_id: str) -> SongJob:
        job = self.repo.get(job_id)
        if not job:
            raise JobNotFound(f"song job {job_id} not found")
        if job.owner_id != requester_id and not job.published:
            raise Unauthorized("song job belongs to another user")
        return job

    def list_jobs(self, owner_id: str) -> list[SongJob]:
        return self.repo.list(owner_id=owner_id)

    def set_published(self, job_id: UUID, owner_id: str, published: bool) -> SongJob:
        self._require_owner(job_id, owner_id)
        return self.repo.update(job_id, published=published)

    def delete_media(self, job_id: UUID, owner_id: str) -> None:
        job = self._require_owner(job_id, owner_id)
        self.assets.delete_assets(audio_ref=job.audio_ref, cover_ref=job.cover_ref)
        self.log.info(
            "song media deleted",
            extra={"job_id": str(job_id), "audio_ref": job.audio_ref, "cover_ref": job.cover_ref},
        )

    def _require_owner(self, job_id: UUID, owner_id: str) -> SongJob:
        job = self.repo.get(job_id)
        if not job:
            raise JobNotFound(f"song job {job_id} not found")
        if job.owner_id != owner_id:
            raise Unauthorized("only the owner can modify this song job")
        return job

    def _apply_result(self, job: SongJob, result: RenderResult) -> None:
        fields: dict[str, Any] = {
            "audio_url": result.audio_url,
            "audio_ref": result.audio_ref,
            "cover_url": result.cover_url,
            "cover_ref": result.cover_ref,
            "status": SongJobStatus.COMPLETED,
        }
        if result.categories:
            fields["categories"] = result.categories
        updated = self.repo.update(job.id, **fields)
        self.log.info(
            "song job completed",
            extra={
                "job_id": str(job.id),
                "audio_ref": updated.audio_ref,
                "has_audio_url": bool(updated.audio_url),
                "cover_ref": updated.cover_ref,
            },
        )
        if not result.has_audio():
            self._recover_from_catalog(updated)

    def _recover_from_catalog(self, job: SongJob) -> None:
        self.log.info("render result carried no audio, trying catalog lookup", extra={"job_id": str(job.id)})
        try:
            match = self.fallback.discover(job)
        except SongServiceError as exc:
            self.log.error("catalog fallback lookup failed", extra={"job_id": str(job.id), "error": exc.message})
            return
        if match is None:
            self.log.warning("catalog fallback found no audio", extra={"job_id": str(job.id)})
            return
        fields: dict[str, Any] = {
            "audio_url": match.audio.url,
            "audio_ref": match.audio.stable_id,
            "status": SongJobStatus.COMPLETED,
        }
        if match.cover and not (job.cover_url or job.cover_ref):
            fields["cover_url"] = match.cover.url
            fields["cover_ref"] = match.cover.stable_id
        self.repo.update(job.id, **fields)
        self.log.info(
            "song job updated from catalog",
            extra={"job_id": str(job.id), "public_id": match.audio.stable_id, "strategy": match.strategy},
        )

    def _mark_failed(self, job_id: UUID, error: str) -> None:
        try:
            self.repo.update(job_id, status=SongJobStatus.FAILED, error=error)
        except JobTransitionError:
            self.log.error(
                "song job already terminal, failure not recorded",
                extra={"job_id": str(job_id), "error": error},
            )
        except JobNotFound:
            self.log.warning("song job vanished before failure was recorded", extra={"job_id": str(job_id)})

    def _emit_job_event(self, event: str, job: SongJob) -> None:
        if not self.events:
            return
        try:
            self.events.publish_job(event, job)
        except Exception:
            self.log.warning("job event emission failed", extra={"job_id": str(job.id)}, exc_info=True)
