from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .domain import AssetDescriptor, GenerationInputs, SongJob


class SongGenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = Field(default=None, validation_alias="prompt")
    lyrics: Optional[str] = Field(default=None, validation_alias="lyrics")
    described_lyrics: Optional[str] = Field(default=None, validation_alias="described_lyrics")
    full_described_song: Optional[str] = Field(default=None, validation_alias="full_described_song")
    instrumental: bool = Field(default=False, validation_alias="instrumental")
    guidance_scale: Optional[float] = Field(default=None, gt=0, le=30, validation_alias="guidance_scale")

    @model_validator(mode="after")
    def validate_inputs(self) -> "SongGenerationRequest":
        texts = (self.prompt, self.lyrics, self.described_lyrics, self.full_described_song)
        if not any(text and text.strip() for text in texts):
            raise ValueError("one of prompt, lyrics, described_lyrics or full_described_song is required")
        return self

    def to_inputs(self) -> GenerationInputs:
        return GenerationInputs(
            prompt=self.prompt,
            lyrics=self.lyrics,
            described_lyrics=self.described_lyrics,
            full_described_song=self.full_described_song,
            instrumental=self.instrumental,
        )


class SongJobResponse(BaseModel):
    job: SongJob


class SongListItem(BaseModel):
    job: SongJob
    thumbnail_url: Optional[str] = None


class SongJobListResponse(BaseModel):
    items: List[SongListItem]


class PlayUrlResponse(BaseModel):
    url: str
    tier: str


class PublishRequest(BaseModel):
    published: bool


class AssetListResponse(BaseModel):
    audio: List[AssetDescriptor]
    images: List[AssetDescriptor]
