"""Asset store contract shared by the Cloudinary and S3 providers."""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from song_service.clients.cloudinary import CloudinaryAssetStore
from song_service.clients.s3_storage import S3AssetStore
from song_service.config import Settings
from song_service.models.domain import AssetDescriptor, AssetKind, AssetListing

log = logging.getLogger(__name__)


class AssetStore(Protocol):
    def resolve_audio(self, stable_id: str) -> str:
        """Playable URL for an audio asset; no network round trip."""

    def resolve_cover(self, stable_id: str) -> str:
        """Display URL for a cover image thumbnail; no network round trip."""

    def list_recent(self, kind: AssetKind, scope_folder: str | None = None, limit: int = 30) -> List[AssetDescriptor]:
        """Most-recent-first descriptors of one medium."""

    def browse(self, scope_folder: str | None = None, limit: int = 30) -> AssetListing:
        """Both media; fails as a whole when either listing fails."""

    def delete_assets(self, audio_ref: str | None = None, cover_ref: str | None = None) -> None:
        """Idempotent removal of backing media."""


def build_asset_store(settings: Settings, logger: Optional[logging.Logger] = None) -> AssetStore:
    provider = settings.storage_provider.strip().lower()
    if provider == "cloudinary":
        store = CloudinaryAssetStore(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            sign_urls=settings.cloudinary_sign_urls,
            timeout=settings.catalog_timeout_seconds,
            logger=logger,
        )
        if not store.is_configured():
            log.warning(
                "cloudinary credentials incomplete, catalog listing and deletion will fail",
                extra={"cloud_name": settings.cloudinary_cloud_name or None},
            )
        return store
    if provider == "s3":
        return S3AssetStore(
            bucket=settings.s3_bucket,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            public_url=settings.s3_public_url,
            presign_expires=settings.s3_presign_expires_seconds,
            addressing_style=settings.s3_addressing_style,
            logger=logger,
        )
    raise ValueError(f"unsupported storage provider: {settings.storage_provider}")
