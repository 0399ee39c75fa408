from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from song_service.clients.assets import AssetStore
from song_service.models.domain import AssetDescriptor, SongJob


@dataclass(frozen=True)
class CatalogMatch:
    audio: AssetDescriptor
    cover: AssetDescriptor | None
    strategy: str


class CatalogFallback:
    """Catalog scan shared by the post-render check and the play-URL read path.

    Candidates are matched against the job id first, then the job title
    (case-insensitive substring of the stable id). When nothing matches, the
    most recent upload is taken. Two jobs finishing close together can
    therefore be handed the same asset; the ``latest`` strategy is logged so
    the cross-assignment can be traced.
    """

    def __init__(
        self,
        store: AssetStore,
        folder: str | None,
        limit: int = 30,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.folder = folder
        self.limit = limit
        self.log = logger or logging.getLogger(__name__)

    def discover(self, job: SongJob) -> CatalogMatch | None:
        listing = self.store.browse(self.folder, self.limit)
        audio, strategy = self._pick(job, listing.audio)
        if audio is None:
            return None
        cover, _ = self._pick(job, listing.images)
        if strategy == "latest":
            self.log.warning(
                "no catalog asset matched song job, using most recent upload",
                extra={"job_id": str(job.id), "public_id": audio.stable_id},
            )
        return CatalogMatch(audio=audio, cover=cover, strategy=strategy)

    def _pick(self, job: SongJob, candidates: Sequence[AssetDescriptor]) -> tuple[AssetDescriptor | None, str]:
        if not candidates:
            return None, ""
        job_id = str(job.id).lower()
        for asset in candidates:
            if job_id in asset.stable_id.lower():
                return asset, "id"
        title = (job.title or "").strip().lower()
        if title:
            for asset in candidates:
                if title in asset.stable_id.lower():
                    return asset, "title"
        return candidates[0], "latest"
