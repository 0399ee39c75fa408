from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SongJobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RenderEndpoint(str, Enum):
    DESCRIPTION = "description"
    DESCRIBED_LYRICS = "described_lyrics"
    LYRICS = "lyrics"


class AssetKind(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"


class GenerationInputs(BaseModel):
    prompt: Optional[str] = None
    lyrics: Optional[str] = None
    described_lyrics: Optional[str] = None
    full_described_song: Optional[str] = None
    instrumental: bool = False


class SongJob(BaseModel):
    id: UUID
    owner_id: str
    title: str
    inputs: GenerationInputs
    guidance_scale: float
    audio_duration: int = 180
    status: SongJobStatus = SongJobStatus.PROCESSING
    audio_ref: Optional[str] = None
    audio_url: Optional[str] = None
    cover_ref: Optional[str] = None
    cover_url: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    listen_count: int = 0
    published: bool = False
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class AssetDescriptor(BaseModel):
    kind: AssetKind
    stable_id: str
    url: str
    name: str = ""


class AssetListing(BaseModel):
    """Catalog snapshot, each list most-recent-first."""

    audio: List[AssetDescriptor] = Field(default_factory=list)
    images: List[AssetDescriptor] = Field(default_factory=list)


class RenderRequest(BaseModel):
    endpoint: RenderEndpoint
    payload: dict[str, Any]


class RenderResult(BaseModel):
    audio_ref: Optional[str] = None
    audio_url: Optional[str] = None
    cover_ref: Optional[str] = None
    cover_url: Optional[str] = None
    categories: List[str] = Field(default_factory=list)

    def has_audio(self) -> bool:
        return bool(self.audio_ref or self.audio_url)
