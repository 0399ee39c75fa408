from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse

from song_service.clients.assets import AssetStore, build_asset_store
from song_service.clients.render_backend import RenderBackendClient
from song_service.config import Settings, get_settings
from song_service.errors import SongServiceError
from song_service.events.publisher import JobEventPublisher
from song_service.models.api import (
    AssetListResponse,
    PlayUrlResponse,
    PublishRequest,
    SongGenerationRequest,
    SongJobListResponse,
    SongJobResponse,
    SongListItem,
)
from song_service.models.domain import RenderEndpoint
from song_service.queue.queue import KafkaQueue, LocalQueue
from song_service.services.asset_fallback import CatalogFallback
from song_service.services.generation import GenerationOrchestrator
from song_service.services.playback import JobResultResolver
from song_service.storage.repository import SongJobRepository

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

log = logging.getLogger(__name__)

_repo = SongJobRepository()
_services: "SongServices | None" = None


@dataclass
class SongServices:
    orchestrator: GenerationOrchestrator
    resolver: JobResultResolver
    assets: AssetStore
    settings: Settings
    events: JobEventPublisher | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _services is not None and _services.events is not None:
        log.info("closing song event publisher")
        _services.events.close()


app = FastAPI(lifespan=lifespan)


@app.exception_handler(SongServiceError)
async def handle_service_error(request: Request, exc: SongServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind.value},
    )


def require_user_id(x_user_id: str = Header(default=None, alias="X-User-ID")) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-ID header required")
    return x_user_id


def get_services(settings: Settings = Depends(get_settings)) -> SongServices:
    global _services
    if _services is None:
        _services = build_services(settings, _repo)
    return _services


def build_services(settings: Settings, repo: SongJobRepository) -> SongServices:
    assets = build_asset_store(settings, logger=logging.getLogger("song_service.assets"))
    fallback = CatalogFallback(assets, folder=settings.asset_folder, limit=settings.catalog_limit)
    render = RenderBackendClient(
        endpoints={
            RenderEndpoint.DESCRIPTION: settings.generate_from_description_url,
            RenderEndpoint.DESCRIBED_LYRICS: settings.generate_from_described_lyrics_url,
            RenderEndpoint.LYRICS: settings.generate_with_lyrics_url,
        },
        modal_key=settings.modal_key,
        modal_secret=settings.modal_secret,
        timeout=settings.render_timeout_seconds,
        audio_duration=settings.audio_duration,
        seed=settings.render_seed,
        infer_step=settings.render_infer_step,
    )
    events = None
    if settings.kafka_enabled and settings.kafka_updates_topic:
        try:
            events = JobEventPublisher(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                topic=settings.kafka_updates_topic,
            )
        except Exception:  # pragma: no cover - best effort logging
            log.warning(
                "job event publisher unavailable",
                extra={"topic": settings.kafka_updates_topic},
                exc_info=True,
            )
    orchestrator = GenerationOrchestrator(
        repo=repo,
        settings=settings,
        render=render,
        assets=assets,
        fallback=fallback,
        events=events,
    )
    orchestrator.bind_queue(_build_queue(settings, orchestrator))
    resolver = JobResultResolver(repo=repo, assets=assets, fallback=fallback)
    return SongServices(
        orchestrator=orchestrator,
        resolver=resolver,
        assets=assets,
        settings=settings,
        events=events,
    )


def _build_queue(settings: Settings, orchestrator: GenerationOrchestrator):
    if settings.kafka_enabled:
        return KafkaQueue(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_topic,
            group_id=settings.kafka_group_id,
            processor=orchestrator.process_job,
        )
    return LocalQueue(processor=orchestrator.process_job, workers=settings.worker_concurrency)


@app.post("/songs", response_model=SongJobResponse, status_code=status.HTTP_202_ACCEPTED)
def create_song(
    payload: SongGenerationRequest,
    user_id: str = Depends(require_user_id),
    services: SongServices = Depends(get_services),
) -> SongJobResponse:
    job = services.orchestrator.submit(payload.to_inputs(), user_id, guidance_scale=payload.guidance_scale)
    return SongJobResponse(job=job)


@app.get("/songs", response_model=SongJobListResponse)
def list_songs(
    user_id: str = Depends(require_user_id),
    services: SongServices = Depends(get_services),
) -> SongJobListResponse:
    items = [
        SongListItem(job=job, thumbnail_url=services.resolver.resolve_cover_url(job))
        for job in services.orchestrator.list_jobs(user_id)
    ]
    return SongJobListResponse(items=items)


@app.get("/songs/{job_id}", response_model=SongJobResponse)
def get_song(
    job_id: UUID,
    user_id: str = Depends(require_user_id),
    services: SongServices = Depends(get_services),
) -> SongJobResponse:
    return SongJobResponse(job=services.orchestrator.get_job(job_id, user_id))


@app.get("/songs/{job_id}/play-url", response_model=PlayUrlResponse)
def get_play_url(
    job_id: UUID,
    user_id: str = Depends(require_user_id),
    services: SongServices = Depends(get_services),
) -> PlayUrlResponse:
    resolved = services.resolver.resolve_play_url(job_id, user_id)
    return PlayUrlResponse(url=resolved.url, tier=resolved.tier)


@app.post("/songs/{job_id}/publish", response_model=SongJobResponse)
def publish_song(
    job_id: UUID,
    payload: PublishRequest,
    user_id: str = Depends(require_user_id),
    services: SongServices = Depends(get_services),
) -> SongJobResponse:
    return SongJobResponse(job=services.orchestrator.set_published(job_id, user_id, payload.published))


@app.delete("/songs/{job_id}/media", status_code=status.HTTP_204_NO_CONTENT)
def delete_song_media(
    job_id: UUID,
    user_id: str = Depends(require_user_id),
    services: SongServices = Depends(get_services),
) -> Response:
    services.orchestrator.delete_media(job_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/assets", response_model=AssetListResponse, dependencies=[Depends(require_user_id)])
def browse_assets(
    folder: str | None = Query(default=None, description="Folder inside the asset store, defaults to the configured one."),
    limit: int = Query(default=30, ge=1, le=500),
    services: SongServices = Depends(get_services),
) -> AssetListResponse:
    listing = services.assets.browse(folder or services.settings.asset_folder, limit)
    return AssetListResponse(audio=listing.audio, images=listing.images)
