from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from song_service.clients.assets import AssetStore
from song_service.errors import (
    AssetUnavailable,
    GenerationFailed,
    JobNotFound,
    NotReady,
    SongServiceError,
    Unauthorized,
)
from song_service.models.domain import SongJob, SongJobStatus
from song_service.services.asset_fallback import CatalogFallback
from song_service.storage.repository import SongJobRepository


@dataclass(frozen=True)
class PlayUrl:
    url: str
    tier: str


class JobResultResolver:
    """Read path for finished songs.

    Resolution walks a fixed list of tiers: the stored URL, a URL built from
    the stored asset reference, then the catalog scan. Whatever a tier finds
    is written back to the job before returning, so the next read for the
    same job stops at the first tier.
    """

    def __init__(
        self,
        repo: SongJobRepository,
        assets: AssetStore,
        fallback: CatalogFallback,
    ) -> None:
        self.repo = repo
        self.assets = assets
        self.fallback = fallback
        self.log = logging.getLogger(__name__)

    def resolve_play_url(self, job_id: UUID, requester_id: str) -> PlayUrl:
        job = self.repo.get(job_id)
        if not job:
            raise JobNotFound(f"song job {job_id} not found")
        if job.owner_id != requester_id and not job.published:
            raise Unauthorized("song job belongs to another user")
        if job.status == SongJobStatus.PROCESSING:
            raise NotReady("Your song is still being generated. Please wait a moment and try again.")
        if job.status == SongJobStatus.FAILED:
            raise GenerationFailed("Song generation failed. Please try creating a new song.")

        for tier, resolve in (
            ("stored_url", self._from_stored_url),
            ("asset_ref", self._from_asset_ref),
            ("catalog", self._from_catalog),
        ):
            try:
                url = resolve(job)
            except SongServiceError as exc:
                self.log.warning(
                    "play url tier failed",
                    extra={"job_id": str(job_id), "tier": tier, "kind": exc.kind.value, "error": exc.message},
                )
                continue
            if url:
                self.repo.increment(job_id, "listen_count")
                self.log.info("play url resolved", extra={"job_id": str(job_id), "tier": tier})
                return PlayUrl(url=url, tier=tier)

        self.log.error(
            "song has no audio data",
            extra={"job_id": str(job_id), "status": job.status.value},
        )
        raise AssetUnavailable(
            "Audio URL not available for this song. The file may still be processing or wasn't properly saved."
        )

    def resolve_cover_url(self, job: SongJob) -> str | None:
        if job.cover_url:
            return job.cover_url
        if job.cover_ref:
            try:
                return self.assets.resolve_cover(job.cover_ref)
            except SongServiceError:
                self.log.warning("cover url construction failed", extra={"job_id": str(job.id)}, exc_info=True)
        return None

    def _from_stored_url(self, job: SongJob) -> str | None:
        return job.audio_url or None

    def _from_asset_ref(self, job: SongJob) -> str | None:
        if not job.audio_ref:
            return None
        url = self.assets.resolve_audio(job.audio_ref)
        self.repo.update(job.id, audio_url=url)
        return url

    def _from_catalog(self, job: SongJob) -> str | None:
        match = self.fallback.discover(job)
        if match is None:
            return None
        self.repo.update(
            job.id,
            audio_url=match.audio.url,
            audio_ref=match.audio.stable_id,
            status=SongJobStatus.COMPLETED,
        )
        self.log.info(
            "song job healed from catalog",
            extra={"job_id": str(job.id), "public_id": match.audio.stable_id, "strategy": match.strategy},
        )
        return match.audio.url
