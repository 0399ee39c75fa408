from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from song_service.errors import CatalogUnavailable, InvalidArgument
from song_service.models.domain import AssetDescriptor, AssetKind, AssetListing

_EXTENSIONS = {
    AssetKind.AUDIO: (".mp3", ".wav", ".ogg", ".flac", ".m4a", ".aac"),
    AssetKind.IMAGE: (".png", ".jpg", ".jpeg", ".webp"),
}


class S3AssetStore:
    def __init__(
        self,
        bucket: str,
        access_key: str | None,
        secret_key: str | None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_url: str | None = None,
        presign_expires: int = 3600,
        addressing_style: str | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.bucket = (bucket or "").strip()
        self.access_key = (access_key or "").strip()
        self.secret_key = (secret_key or "").strip()
        self.endpoint_url = (endpoint_url or "").rstrip("/") or None
        self.region_name = (region_name or "").strip() or None
        self.public_url_base = (public_url or "").rstrip("/")
        self.presign_expires = presign_expires
        self.log = logger or logging.getLogger(__name__)
        self._memory: Dict[str, tuple[bytes, datetime, int]] = {}
        self._sequence = itertools.count()
        self._client = None
        if self.is_configured():
            session = boto3.session.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
            config = BotoConfig(
                s3={"addressing_style": (addressing_style or "virtual").lower()},
                signature_version="s3v4",
            )
            self._client = session.client("s3", endpoint_url=self.endpoint_url, config=config)

    def is_configured(self) -> bool:
        return bool(self.bucket and self.access_key and self.secret_key)

    def upload_bytes(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        key = self._normalize_path(path)
        if self._client is None:
            self._memory[key] = (content, datetime.utcnow(), next(self._sequence))
            return self.public_url(key)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise ValueError(f"S3 upload failed: {exc}") from exc
        return self.public_url(key)

    def resolve_audio(self, stable_id: str) -> str:
        return self._object_url(stable_id)

    def resolve_cover(self, stable_id: str) -> str:
        # no transformation service in front of the bucket; covers are served as stored
        return self._object_url(stable_id)

    def list_recent(self, kind: AssetKind, scope_folder: str | None = None, limit: int = 30) -> List[AssetDescriptor]:
        prefix = self._normalize_path(scope_folder)
        objects = self._list_objects(prefix)
        extensions = _EXTENSIONS[kind]
        matching = [obj for obj in objects if obj["key"].lower().endswith(extensions)]
        matching.sort(key=lambda obj: (obj["last_modified"], obj["order"]), reverse=True)
        return [
            AssetDescriptor(
                kind=kind,
                stable_id=obj["key"],
                url=self.public_url(obj["key"]),
                name=obj["key"].split("/")[-1],
            )
            for obj in matching[:limit]
        ]

    def browse(self, scope_folder: str | None = None, limit: int = 30) -> AssetListing:
        return AssetListing(
            audio=self.list_recent(AssetKind.AUDIO, scope_folder, limit),
            images=self.list_recent(AssetKind.IMAGE, scope_folder, limit),
        )

    def delete_assets(self, audio_ref: str | None = None, cover_ref: str | None = None) -> None:
        for ref in (audio_ref, cover_ref):
            key = self._normalize_path(ref)
            if not key:
                continue
            if self._client is None:
                self._memory.pop(key, None)
                continue
            try:
                self._client.delete_object(Bucket=self.bucket, Key=key)
            except (BotoCoreError, ClientError):
                self.log.warning("s3 asset deletion failed", extra={"key": key}, exc_info=True)

    def public_url(self, path: str) -> str:
        clean = self._normalize_path(path)
        if self.public_url_base:
            return f"{self.public_url_base}/{clean}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{clean}"
        return f"/{self.bucket}/{clean}"

    def _object_url(self, stable_id: str) -> str:
        key = self._normalize_path(stable_id)
        if not key:
            raise InvalidArgument(f"invalid object key: {stable_id!r}")
        if self._client is None or self.public_url_base:
            return self.public_url(key)
        # presigning is local, no request is made
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.presign_expires,
        )

    def _list_objects(self, prefix: str) -> List[dict[str, Any]]:
        if self._client is None:
            return [
                {"key": key, "last_modified": modified, "order": order}
                for key, (_, modified, order) in self._memory.items()
                if not prefix or key.startswith(prefix)
            ]
        contents: List[dict[str, Any]] = []
        kwargs: Dict[str, Any] = {"Bucket": self.bucket}
        if prefix:
            kwargs["Prefix"] = prefix
        continuation_token: str | None = None
        while True:
            if continuation_token:
                kwargs["ContinuationToken"] = continuation_token
            try:
                response = self._client.list_objects_v2(**kwargs)
            except (BotoCoreError, ClientError) as exc:
                self.log.error("s3 listing failed", extra={"prefix": prefix, "error": str(exc)})
                raise CatalogUnavailable(f"S3 list failed: {exc}") from exc
            for obj in response.get("Contents", []):
                key = obj.get("Key")
                if not key or key.endswith("/") or obj.get("LastModified") is None:
                    continue
                contents.append({"key": key, "last_modified": obj.get("LastModified"), "order": 0})
            if not response.get("IsTruncated"):
                break
            continuation_token = response.get("NextContinuationToken")
        return contents

    def _normalize_path(self, path: str | None) -> str:
        if not path:
            return ""
        return "/".join(part for part in path.strip().split("/") if part)
