"""Request, artifact and result types flowing through the scene pipeline."""

import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidRequest

MAX_MEDIA_BYTES = 25 * 1024 * 1024


@dataclass(frozen=True)
class UploadedFile:
    """A video already written to a local path by the form handler."""

    local_path: str


@dataclass(frozen=True)
class RemoteSource:
    """A video to be fetched from a remote URL."""

    url: str


IngestRequest = UploadedFile | RemoteSource


@dataclass(frozen=True)
class IngestFields:
    """Raw form input: either field may be missing."""

    local_path: str | None = None
    url: str | None = None


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def resolve_request(request: Any) -> IngestRequest:
    """Reduce raw form input to exactly one ingest variant, or raise InvalidRequest."""
    if isinstance(request, (UploadedFile, RemoteSource)):
        return request
    if isinstance(request, IngestFields):
        has_file = _present(request.local_path)
        has_url = _present(request.url)
        if has_file and not has_url:
            return UploadedFile(request.local_path)
        if has_url and not has_file:
            return RemoteSource(request.url.strip())
        if has_file and has_url:
            raise InvalidRequest("Provide either a file or a videoUrl, not both")
    raise InvalidRequest("No file or URL provided")


class Origin(enum.Enum):
    UPLOADED = "uploaded"
    DOWNLOADED = "downloaded"


@dataclass(frozen=True)
class MediaArtifact:
    path: str
    size_bytes: int
    origin: Origin


@dataclass(frozen=True)
class Transcript:
    text: str


class SceneMetadata(BaseModel):
    """Scene description returned by the annotation engine. Every field is optional."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    title: str | None = None
    season: int | str | None = None
    episode: int | str | None = None
    characters: list[str] | None = None
    timestamp: str | None = None
    description: str | None = None

    @field_validator("characters", mode="before")
    @classmethod
    def _normalize_characters(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            # {"name": "Alice"} entries are common in model answers
            return [item.get("name", item) if isinstance(item, dict) else item for item in value]
        return value


@dataclass(frozen=True)
class PipelineResult:
    transcript: Transcript
    metadata: SceneMetadata

    def to_response(self) -> dict:
        """Shape returned to HTTP callers."""
        return {
            "transcript": self.transcript.text,
            "result": self.metadata.model_dump(exclude_none=True),
        }
