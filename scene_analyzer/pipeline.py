"""Request pipeline: acquire the video, transcribe it, annotate the transcript."""

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from .acquirer import MediaAcquirer
from .errors import MetadataParseError
from .models import IngestFields, PipelineResult, UploadedFile
from .storage import TempStorage

logger = logging.getLogger(__name__)


def _upload_path(request) -> str | None:
    if isinstance(request, (UploadedFile, IngestFields)) and request.local_path:
        return request.local_path
    return None


class ScenePipeline:
    """Runs one request through acquisition, transcription and annotation.

    The pipeline is the last owner of every file the request touches: the
    uploaded video and anything downloaded into scratch storage are deleted on
    every exit path, including failures during acquisition itself.
    """

    def __init__(self, storage: TempStorage, acquirer: MediaAcquirer, transcriber, annotator) -> None:
        self.storage = storage
        self.acquirer = acquirer
        self.transcriber = transcriber
        self.annotator = annotator

    @asynccontextmanager
    async def _owned_paths(self) -> AsyncIterator[Callable[[str], None]]:
        paths: list[str] = []
        try:
            yield paths.append
        finally:
            for path in paths:
                self.storage.release(path)

    async def run(self, request) -> PipelineResult:
        started = time.monotonic()
        stage = "acquiring"
        transcript = None
        async with self._owned_paths() as own:
            try:
                upload = _upload_path(request)
                if upload:
                    own(upload)
                artifact = await self.acquirer.acquire(request, track=own)

                stage = "transcribing"
                transcript = await self.transcriber.transcribe(artifact)

                stage = "annotating"
                metadata = await self.annotator.annotate(transcript)
            except Exception as exc:
                if isinstance(exc, MetadataParseError) and exc.transcript is None:
                    exc.transcript = transcript
                logger.error(
                    "Scene pipeline failed while %s: %s: %s",
                    stage,
                    type(exc).__name__,
                    exc,
                    extra={"stage": stage, "error_kind": type(exc).__name__},
                )
                raise

        logger.info("Scene pipeline finished in %.2fs", time.monotonic() - started)
        return PipelineResult(transcript=transcript, metadata=metadata)
