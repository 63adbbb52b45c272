"""Error taxonomy of the scene pipeline. Every stage raises one of these."""

from typing import Any


class SceneAnalyzerError(Exception):
    """Base error: carries the HTTP status and whether the caller is at fault."""

    status_code = 500
    client_error = False
    stage = "internal"


class InvalidRequest(SceneAnalyzerError):
    """Neither or both of upload and URL were given, or the input is unusable."""

    status_code = 400
    client_error = True
    stage = "acquiring"


class AcquisitionError(SceneAnalyzerError):
    """Failure while materializing the media artifact."""

    stage = "acquiring"

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        # partial file left behind by the failed acquisition, if any
        self.path = path


class FetchTimeout(AcquisitionError):
    status_code = 504


class FetchFailed(AcquisitionError):
    status_code = 422
    client_error = True


class TooLarge(AcquisitionError):
    status_code = 413
    client_error = True


class ServiceError(SceneAnalyzerError):
    """Wraps an error surfaced by an external engine."""

    status_code = 502

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TranscriptionServiceError(ServiceError):
    stage = "transcribing"


class AnnotationServiceError(ServiceError):
    stage = "annotating"


class MetadataParseError(SceneAnalyzerError):
    """The annotation engine answered, but not with a JSON object."""

    status_code = 502
    stage = "annotating"

    def __init__(self, raw_text: str, transcript: Any = None, reason: str = "not a JSON object") -> None:
        super().__init__(f"Could not parse scene metadata: {reason}")
        self.raw_text = raw_text
        self.transcript = transcript


class StorageError(SceneAnalyzerError):
    stage = "storage"


class NotFound(StorageError):
    pass
