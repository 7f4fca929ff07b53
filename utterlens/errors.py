"""Error types raised by the transcription, asset and inference layers."""

from __future__ import annotations


class UtterlensError(RuntimeError):
    """Base class for all errors surfaced to callers."""


class RecordingNotFoundError(UtterlensError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Recording not found: {path}")


class TranscriptionRequestError(UtterlensError):
    """Upstream speech recognition failed or returned nothing usable."""

    def __init__(self, message: str, *, provider: str = "",
                 upstream_message: str | None = None,
                 status_code: int | None = None,
                 quota_exceeded: bool = False):
        self.provider = provider
        self.upstream_message = upstream_message
        self.status_code = status_code
        self.quota_exceeded = quota_exceeded
        super().__init__(message)


class AssetResolutionError(UtterlensError):
    """A model asset could not be materialized on local storage."""


class ModelNotFoundError(AssetResolutionError):
    def __init__(self, relative_path: str, searched: list[str]):
        self.relative_path = relative_path
        self.searched = list(searched)
        super().__init__(
            f"Model file not found in bundle: {relative_path} "
            f"(searched: {', '.join(self.searched) or 'nothing'}). "
            f"Make sure the GGUF file was added at {relative_path}."
        )

