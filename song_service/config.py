from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SONG_SERVICE_", env_file=".env", env_file_encoding="utf-8")

    app_name: str = "song-service"
    host: str = "0.0.0.0"
    port: int = 8100
    log_level: str = "INFO"

    # Render backend endpoints, one per input mode
    generate_from_description_url: str = ""
    generate_from_described_lyrics_url: str = ""
    generate_with_lyrics_url: str = ""
    modal_key: str = ""
    modal_secret: str = ""
    render_timeout_seconds: float = 120.0

    default_guidance_scale: float = 7.5
    audio_duration: int = 180
    render_seed: int = -1
    render_infer_step: int = 60

    # Asset store: "cloudinary" or "s3"
    storage_provider: str = "cloudinary"
    asset_folder: str = "music-generator"
    catalog_limit: int = 30
    catalog_timeout_seconds: float = 30.0

    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_sign_urls: bool = False

    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_bucket: str = "generated-songs"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str = "virtual"
    s3_presign_expires_seconds: int = 3600

    worker_concurrency: int = 4

    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_topic: str = "song_jobs"
    kafka_updates_topic: str = "song_updates"
    kafka_group_id: str = "song-service-consumer"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
