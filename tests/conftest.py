from __future__ import annotations

from typing import Any
from uuid import uuid4

import httpx
import pytest

from song_service.clients.cloudinary import CloudinaryAssetStore
from song_service.clients.render_backend import RenderBackendClient
from song_service.config import Settings
from song_service.models.domain import GenerationInputs, RenderEndpoint, SongJob, SongJobStatus
from song_service.services.asset_fallback import CatalogFallback
from song_service.services.generation import GenerationOrchestrator
from song_service.services.playback import JobResultResolver
from song_service.storage.repository import SongJobRepository

RENDER_URLS = {
    RenderEndpoint.DESCRIPTION: "https://render.test/generate-from-description",
    RenderEndpoint.DESCRIBED_LYRICS: "https://render.test/generate-from-described-lyrics",
    RenderEndpoint.LYRICS: "https://render.test/generate-with-lyrics",
}


class CatalogServer:
    """Stands in for the Cloudinary admin API; resource lists are most-recent-first."""

    def __init__(self) -> None:
        self.audio: list[dict[str, Any]] = []
        self.images: list[dict[str, Any]] = []
        self.status_code = 200
        self.requests: list[httpx.Request] = []

    def add_audio(self, public_id: str, url: str | None = None) -> None:
        self.audio.append({"public_id": public_id, "secure_url": url or f"https://cdn.test/video/{public_id}.mp3"})

    def add_image(self, public_id: str, url: str | None = None) -> None:
        self.images.append({"public_id": public_id, "secure_url": url or f"https://cdn.test/image/{public_id}.png"})

    def listing_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if "/resources/" in request.url.path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/destroy"):
            return httpx.Response(200, json={"result": "ok"})
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="catalog exploded")
        resource_type = request.url.path.rsplit("/", 1)[-1]
        resources = self.audio if resource_type == "video" else self.images
        return httpx.Response(200, json={"resources": resources})


class RenderServer:
    def __init__(self) -> None:
        self.status_code = 200
        self.payload: Any = {
            "audio_public_id": "music-generator/audio/song-1",
            "audio_url": "https://cdn.test/video/song-1.mp3",
            "cover_image_public_id": "music-generator/covers/song-1",
            "cover_image_url": "https://cdn.test/image/song-1.png",
            "categories": ["pop", "upbeat"],
        }
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)


class RecordingQueue:
    def __init__(self) -> None:
        self.job_ids = []

    def enqueue(self, job_id) -> None:
        self.job_ids.append(job_id)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        generate_from_description_url=RENDER_URLS[RenderEndpoint.DESCRIPTION],
        generate_from_described_lyrics_url=RENDER_URLS[RenderEndpoint.DESCRIBED_LYRICS],
        generate_with_lyrics_url=RENDER_URLS[RenderEndpoint.LYRICS],
        cloudinary_cloud_name="demo",
        cloudinary_api_key="key",
        cloudinary_api_secret="secret",
        worker_concurrency=2,
    )


@pytest.fixture
def repo() -> SongJobRepository:
    return SongJobRepository()


@pytest.fixture
def catalog_server() -> CatalogServer:
    return CatalogServer()


@pytest.fixture
def render_server() -> RenderServer:
    return RenderServer()


@pytest.fixture
def assets(settings: Settings, catalog_server: CatalogServer) -> CloudinaryAssetStore:
    return CloudinaryAssetStore(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        transport=httpx.MockTransport(catalog_server.handler),
    )


@pytest.fixture
def fallback(settings: Settings, assets: CloudinaryAssetStore) -> CatalogFallback:
    return CatalogFallback(assets, folder=settings.asset_folder, limit=settings.catalog_limit)


@pytest.fixture
def render_client(settings: Settings, render_server: RenderServer) -> RenderBackendClient:
    return RenderBackendClient(
        endpoints=RENDER_URLS,
        timeout=settings.render_timeout_seconds,
        transport=httpx.MockTransport(render_server.handler),
    )


@pytest.fixture
def orchestrator(repo, settings, render_client, assets, fallback) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        repo=repo,
        settings=settings,
        render=render_client,
        assets=assets,
        fallback=fallback,
    )


@pytest.fixture
def resolver(repo, assets, fallback) -> JobResultResolver:
    return JobResultResolver(repo=repo, assets=assets, fallback=fallback)


@pytest.fixture
def make_job(repo: SongJobRepository):
    def _make_job(**overrides: Any) -> SongJob:
        values: dict[str, Any] = {
            "id": uuid4(),
            "owner_id": "alice",
            "title": "Summer anthem",
            "inputs": GenerationInputs(full_described_song="summer anthem"),
            "guidance_scale": 7.5,
            "status": SongJobStatus.COMPLETED,
        }
        values.update(overrides)
        job = SongJob(**values)
        repo.create(job)
        return job

    return _make_job
