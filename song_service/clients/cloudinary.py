from __future__ import annotations

import base64
import hashlib
import logging
import time
from typing import Any, List, Optional

import httpx

from song_service.errors import CatalogUnavailable, InvalidArgument
from song_service.models.domain import AssetDescriptor, AssetKind, AssetListing

THUMBNAIL_TRANSFORMATION = "w_300,h_300,c_fill,q_auto,f_auto"

# audio uploads live under the "video" resource type
_RESOURCE_TYPES = {
    AssetKind.AUDIO: "video",
    AssetKind.IMAGE: "image",
}


class CloudinaryAssetStore:
    """URL construction, catalog listing and deletion against one Cloudinary cloud."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str | None,
        api_secret: str | None,
        sign_urls: bool = False,
        timeout: float = 30.0,
        delivery_base: str = "https://res.cloudinary.com",
        api_base: str = "https://api.cloudinary.com/v1_1",
        transport: httpx.BaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.cloud_name = (cloud_name or "").strip()
        self.api_key = (api_key or "").strip()
        self.api_secret = (api_secret or "").strip()
        self.sign_urls = sign_urls
        self.timeout = timeout
        self.delivery_base = delivery_base.rstrip("/")
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def resolve_audio(self, stable_id: str) -> str:
        return self._delivery_url(AssetKind.AUDIO, stable_id)

    def resolve_cover(self, stable_id: str) -> str:
        return self._delivery_url(AssetKind.IMAGE, stable_id, transformation=THUMBNAIL_TRANSFORMATION)

    def list_recent(self, kind: AssetKind, scope_folder: str | None = None, limit: int = 30) -> List[AssetDescriptor]:
        resource_type = _RESOURCE_TYPES[kind]
        url = f"{self.api_base}/{self.cloud_name}/resources/{resource_type}"
        params: dict[str, Any] = {"type": "upload", "max_results": limit}
        folder = (scope_folder or "").strip("/")
        if folder:
            params["prefix"] = folder
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(url, params=params, auth=(self.api_key, self.api_secret))
        except httpx.HTTPError as exc:
            self.log.error(
                "cloudinary listing failed",
                extra={"resource_type": resource_type, "error": str(exc)},
            )
            raise CatalogUnavailable(f"cloudinary {resource_type} listing failed: {exc}") from exc
        if response.status_code != 200:
            self.log.error(
                "cloudinary API error",
                extra={"resource_type": resource_type, "status": response.status_code, "body": response.text},
            )
            raise CatalogUnavailable(f"cloudinary {resource_type} listing returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogUnavailable(f"cloudinary {resource_type} listing returned invalid JSON") from exc
        resources = payload.get("resources") if isinstance(payload, dict) else None
        if not isinstance(resources, list):
            resources = []
        assets: List[AssetDescriptor] = []
        for resource in resources:
            if not isinstance(resource, dict):
                continue
            public_id = resource.get("public_id")
            if not isinstance(public_id, str) or not public_id:
                continue
            secure_url = resource.get("secure_url")
            assets.append(
                AssetDescriptor(
                    kind=kind,
                    stable_id=public_id,
                    url=secure_url if isinstance(secure_url, str) and secure_url else self._delivery_url(kind, public_id),
                    name=public_id.split("/")[-1],
                )
            )
        return assets[:limit]

    def browse(self, scope_folder: str | None = None, limit: int = 30) -> AssetListing:
        audio = self.list_recent(AssetKind.AUDIO, scope_folder, limit)
        images = self.list_recent(AssetKind.IMAGE, scope_folder, limit)
        self.log.info(
            "cloudinary assets listed",
            extra={"folder": scope_folder, "audio_count": len(audio), "image_count": len(images)},
        )
        return AssetListing(audio=audio, images=images)

    def delete_assets(self, audio_ref: str | None = None, cover_ref: str | None = None) -> None:
        for kind, ref in ((AssetKind.AUDIO, audio_ref), (AssetKind.IMAGE, cover_ref)):
            if not ref:
                continue
            try:
                self._destroy(kind, ref)
            except (httpx.HTTPError, ValueError):
                self.log.warning(
                    "cloudinary asset deletion failed",
                    extra={"public_id": ref, "resource_type": _RESOURCE_TYPES[kind]},
                    exc_info=True,
                )

    def _destroy(self, kind: AssetKind, public_id: str) -> None:
        resource_type = _RESOURCE_TYPES[kind]
        url = f"{self.api_base}/{self.cloud_name}/{resource_type}/destroy"
        params = {"public_id": public_id, "timestamp": str(int(time.time()))}
        data = {
            **params,
            "api_key": self.api_key,
            "signature": self._api_signature(params),
        }
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.post(url, data=data)
            response.raise_for_status()
        result = response.json().get("result")
        if result not in ("ok", "not found"):
            self.log.warning(
                "cloudinary destroy returned unexpected result",
                extra={"public_id": public_id, "result": result},
            )

    def _delivery_url(self, kind: AssetKind, stable_id: str, transformation: str | None = None) -> str:
        public_id = (stable_id or "").strip().lstrip("/")
        if not public_id:
            raise InvalidArgument(f"invalid public id: {stable_id!r}")
        if not self.cloud_name:
            raise InvalidArgument("cloudinary cloud name is not configured")
        parts = [self.delivery_base, self.cloud_name, _RESOURCE_TYPES[kind], "upload"]
        if self.sign_urls:
            parts.append(self._url_signature(public_id, transformation))
        if transformation:
            parts.append(transformation)
        parts.append(public_id)
        return "/".join(parts)

    def _url_signature(self, public_id: str, transformation: str | None) -> str:
        to_sign = "/".join(part for part in (transformation, public_id) if part)
        digest = hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).digest()
        return f"s--{base64.urlsafe_b64encode(digest)[:8].decode('ascii')}--"

    def _api_signature(self, params: dict[str, str]) -> str:
        serialized = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{serialized}{self.api_secret}".encode("utf-8")).hexdigest()
