from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Optional

import httpx

from song_service.errors import (
    InvalidArgument,
    RenderBackendError,
    RenderTimeout,
    RenderTransportError,
)
from song_service.models.domain import (
    GenerationInputs,
    RenderEndpoint,
    RenderRequest,
    RenderResult,
)


def _populated(value: str | None) -> bool:
    return bool(value and value.strip())


def select_endpoint(inputs: GenerationInputs) -> RenderEndpoint:
    """Full description wins over described lyrics, which wins over plain lyrics."""
    if _populated(inputs.full_described_song):
        return RenderEndpoint.DESCRIPTION
    if _populated(inputs.described_lyrics):
        return RenderEndpoint.DESCRIBED_LYRICS
    return RenderEndpoint.LYRICS


class RenderBackendClient:
    def __init__(
        self,
        endpoints: dict[RenderEndpoint, str],
        modal_key: str | None = None,
        modal_secret: str | None = None,
        timeout: float = 120.0,
        audio_duration: int = 180,
        seed: int = -1,
        infer_step: int = 60,
        transport: httpx.BaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.endpoints = {endpoint: (url or "").strip() for endpoint, url in endpoints.items()}
        self.modal_key = (modal_key or "").strip()
        self.modal_secret = (modal_secret or "").strip()
        self.timeout = timeout
        self.audio_duration = audio_duration
        self.seed = seed
        self.infer_step = infer_step
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    def build_request(self, inputs: GenerationInputs, guidance_scale: float) -> RenderRequest:
        payload: dict[str, Any] = {
            "prompt": inputs.prompt,
            "lyrics": inputs.lyrics,
            "described_lyrics": inputs.described_lyrics,
            "full_described_song": inputs.full_described_song,
        }
        payload = {key: value for key, value in payload.items() if value is not None}
        payload.update(
            {
                "instrumental": bool(inputs.instrumental),
                "guidance_scale": guidance_scale,
                "audio_duration": self.audio_duration,
                "seed": self.seed,
                "infer_step": self.infer_step,
            }
        )
        return RenderRequest(endpoint=select_endpoint(inputs), payload=payload)

    def invoke(self, request: RenderRequest, deadline: float | None = None) -> RenderResult:
        """POST the request and parse the result, bounded by one wall-clock deadline.

        The HTTP exchange runs on a worker thread. When the deadline passes
        before it finishes, ``RenderTimeout`` is raised at once and the client
        is closed under the abandoned worker; the worker itself stops no later
        than its transport timeout.
        """
        url = self.endpoints.get(request.endpoint, "")
        if not url:
            raise InvalidArgument(f"render endpoint URL for {request.endpoint.value} is not configured")
        budget = deadline if deadline is not None else self.timeout
        headers = {"Content-Type": "application/json"}
        if self.modal_key and self.modal_secret:
            headers["Modal-Key"] = self.modal_key
            headers["Modal-Secret"] = self.modal_secret

        self.log.info("calling render backend", extra={"endpoint": request.endpoint.value, "url": url})
        started = time.monotonic()
        outcome: dict[str, Any] = {}
        finished = threading.Event()
        client = httpx.Client(timeout=budget, transport=self._transport)

        def exchange() -> None:
            try:
                with client.stream("POST", url, json=request.payload, headers=headers) as response:
                    outcome["body"] = self._read_within(response, started, budget)
                    outcome["status"] = response.status_code
            except Exception as exc:
                outcome["error"] = exc
            finally:
                finished.set()

        worker = threading.Thread(target=exchange, name="render-call", daemon=True)
        worker.start()
        try:
            completed = finished.wait(max(0.0, budget - (time.monotonic() - started)))
        finally:
            client.close()
        if not completed:
            self.log.error(
                "render backend timed out",
                extra={"endpoint": request.endpoint.value, "deadline_seconds": budget},
            )
            raise RenderTimeout(f"render backend timed out after {budget:g} seconds")

        error = outcome.get("error")
        if isinstance(error, httpx.TimeoutException):
            self.log.error(
                "render backend timed out",
                extra={"endpoint": request.endpoint.value, "deadline_seconds": budget},
            )
            raise RenderTimeout(f"render backend timed out after {budget:g} seconds") from error
        if isinstance(error, httpx.HTTPError):
            self.log.error(
                "render backend request failed",
                extra={"endpoint": request.endpoint.value, "error": str(error)},
            )
            raise RenderTransportError(f"render backend request failed: {error}") from error
        if error is not None:
            raise error

        body: bytes = outcome["body"]
        status: int = outcome["status"]
        text = body.decode("utf-8", errors="replace")
        if not 200 <= status < 300:
            self.log.error(
                "render backend HTTP error",
                extra={"endpoint": request.endpoint.value, "status": status, "body": text[:2000]},
            )
            raise RenderBackendError(f"render backend HTTP {status}: {text}", status=status, body=text)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RenderBackendError("render backend returned invalid JSON", status=status, body=text) from exc
        if not isinstance(data, dict):
            raise RenderBackendError("render backend returned a non-object payload", status=status, body=text)
        self.log.info("render backend response", extra={"endpoint": request.endpoint.value, "payload": data})
        return self._parse_result(data)

    def _read_within(self, response: httpx.Response, started: float, budget: float) -> bytes:
        chunks: list[bytes] = []
        for chunk in response.iter_bytes():
            if time.monotonic() - started > budget:
                # leaving the stream context closes the connection
                raise httpx.ReadTimeout("render deadline exceeded", request=response.request)
            chunks.append(chunk)
        if time.monotonic() - started > budget:
            raise httpx.ReadTimeout("render deadline exceeded", request=response.request)
        return b"".join(chunks)

    def _parse_result(self, data: dict[str, Any]) -> RenderResult:
        categories = data.get("categories") or []
        return RenderResult(
            audio_ref=self._string(data.get("audio_public_id")),
            audio_url=self._string(data.get("audio_url")),
            cover_ref=self._string(data.get("cover_image_public_id")),
            cover_url=self._string(data.get("cover_image_url")),
            categories=[item for item in categories if isinstance(item, str)] if isinstance(categories, list) else [],
        )

    def _string(self, value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None
