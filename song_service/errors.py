"""Typed failures raised across the generation and playback paths."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    BACKEND_ERROR = "backend_error"
    CATALOG_UNAVAILABLE = "catalog_unavailable"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_READY = "not_ready"
    GENERATION_FAILED = "generation_failed"
    ASSET_UNAVAILABLE = "asset_unavailable"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_TRANSITION = "invalid_transition"


class SongServiceError(Exception):
    """Base failure; ``kind`` and ``status_code`` map it onto API responses."""

    kind: FailureKind = FailureKind.BACKEND_ERROR
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RenderTimeout(SongServiceError):
    kind = FailureKind.TIMEOUT
    status_code = 504


class RenderTransportError(SongServiceError):
    kind = FailureKind.TRANSPORT
    status_code = 502


class RenderBackendError(SongServiceError):
    kind = FailureKind.BACKEND_ERROR
    status_code = 502

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message)


class CatalogUnavailable(SongServiceError):
    kind = FailureKind.CATALOG_UNAVAILABLE
    status_code = 503


class InvalidArgument(SongServiceError):
    kind = FailureKind.INVALID_ARGUMENT
    status_code = 400


class NotReady(SongServiceError):
    kind = FailureKind.NOT_READY
    status_code = 409


class GenerationFailed(SongServiceError):
    kind = FailureKind.GENERATION_FAILED
    status_code = 409


class AssetUnavailable(SongServiceError):
    kind = FailureKind.ASSET_UNAVAILABLE
    status_code = 404


class JobNotFound(SongServiceError):
    kind = FailureKind.NOT_FOUND
    status_code = 404


class Unauthorized(SongServiceError):
    kind = FailureKind.UNAUTHORIZED
    status_code = 403


class JobTransitionError(SongServiceError):
    kind = FailureKind.INVALID_TRANSITION
    status_code = 409

    def __init__(self, message: str, allowed_next: list | None = None) -> None:
        super().__init__(message)
        self.allowed_next = list(allowed_next or [])


__all__ = [
    "AssetUnavailable",
    "CatalogUnavailable",
    "FailureKind",
    "GenerationFailed",
    "InvalidArgument",
    "JobNotFound",
    "JobTransitionError",
    "NotReady",
    "RenderBackendError",
    "RenderTimeout",
    "RenderTransportError",
    "SongServiceError",
    "Unauthorized",
]
