"""Exception types.  Only preflight and engine failures ever reach the UI."""

from .models import ErrorKind

NOT_LIVE_MESSAGE = "stream not live yet"


class RadioError(Exception):
    kind: ErrorKind | None = None


class PreflightFailed(RadioError):
    kind = ErrorKind.PREFLIGHT_FAILED

    def __init__(self, detail: str = ""):
        super().__init__(detail or NOT_LIVE_MESSAGE)
        self.detail = detail

    @property
    def message(self) -> str:
        return NOT_LIVE_MESSAGE


class EngineFailed(RadioError):
    kind = ErrorKind.ENGINE_FAILED

    @property
    def message(self) -> str:
        return f"Playback failed: {self}"


class MetadataUnavailable(RadioError):
    kind = ErrorKind.METADATA_UNAVAILABLE


class UnknownStreamError(RadioError, KeyError):
    def __init__(self, stream_id: str):
        super().__init__(stream_id)
        self.stream_id = stream_id

    def __str__(self):
        return f"Unknown stream: {self.stream_id}"
