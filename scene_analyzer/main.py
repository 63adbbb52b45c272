"""FastAPI application exposing the scene analysis endpoint."""

import logging
import os

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI

from .acquirer import MediaAcquirer
from .annotation_service import AnnotationService
from .config import Settings, load_settings
from .errors import SceneAnalyzerError, StorageError
from .logging_config import configure_logging
from .models import IngestFields
from .pipeline import ScenePipeline
from .storage import TempStorage
from .transcribe_service import TranscribeService, WhisperTranscribeService

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1 << 20


def build_pipeline(settings: Settings) -> ScenePipeline:
    """Wire the production clients from settings."""
    storage = TempStorage(settings.scratch_dir)
    openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    if settings.transcription_backend == "openai":
        transcriber = WhisperTranscribeService(openai_client, model=settings.whisper_model)
    else:
        transcriber = TranscribeService(region=settings.aws_region, language_code=settings.transcribe_language)
    return ScenePipeline(
        storage=storage,
        acquirer=MediaAcquirer(storage, fetch_timeout=settings.fetch_timeout, max_bytes=settings.max_media_bytes),
        transcriber=transcriber,
        annotator=AnnotationService(openai_client, model=settings.openai_model),
    )


def get_pipeline(request: Request) -> ScenePipeline:
    """Return the app's pipeline, building the default one on first use."""
    state = request.app.state
    if state.pipeline is None:
        state.pipeline = build_pipeline(state.settings)
    return state.pipeline


async def save_upload(file: UploadFile, storage: TempStorage, limit: int) -> str:
    """Copy an uploaded file into scratch storage and return its path.

    Copying stops as soon as more than ``limit`` bytes are on disk, which is
    enough for the size check to reject the file.
    """
    suffix = os.path.splitext(file.filename or "")[1] or ".mp4"
    path = storage.allocate(suffix)
    written = 0
    try:
        with open(path, "wb") as f:
            while written <= limit:
                chunk = await file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
                written += len(chunk)
    except OSError as exc:
        storage.release(path)
        raise StorageError(f"Cannot save upload: {exc}") from exc
    return path


def create_app(pipeline: ScenePipeline | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Scene Analyzer")
    app.state.settings = settings
    app.state.pipeline = pipeline

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/scene")
    async def analyze_scene(
        file: UploadFile | None = File(None),
        videoUrl: str | None = Form(None),
        pipeline: ScenePipeline = Depends(get_pipeline),
    ) -> JSONResponse:
        """Transcribe an uploaded video (or one fetched from videoUrl) and describe the scene."""
        try:
            local_path = None
            if file is not None:
                local_path = await save_upload(file, pipeline.storage, settings.max_media_bytes)
            result = await pipeline.run(IngestFields(local_path=local_path, url=videoUrl))
        except SceneAnalyzerError as exc:
            logger.warning(
                "Scene request rejected (%s, HTTP %d): %s",
                "client error" if exc.client_error else "service error",
                exc.status_code,
                exc,
            )
            return JSONResponse({"error": str(exc)}, status_code=exc.status_code)
        except Exception:
            logger.exception("Unexpected error while analyzing scene")
            return JSONResponse({"error": "Internal error"}, status_code=500)
        return JSONResponse(result.to_response())

    return app


app = create_app()
