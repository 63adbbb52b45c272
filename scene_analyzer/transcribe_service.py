"""Transcription clients: Amazon Transcribe streaming (via ffmpeg) and OpenAI Whisper."""

import asyncio
import logging

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from openai import AsyncOpenAI, OpenAIError

from .errors import TranscriptionServiceError
from .models import MediaArtifact, Transcript

logger = logging.getLogger(__name__)


class FinalTranscriptHandler(TranscriptResultStreamHandler):
    """Collects the final (non-partial) transcript segments of a stream."""

    def __init__(self, output_stream) -> None:
        super().__init__(output_stream)
        self.segments: list[str] = []

    async def handle_transcript_event(self, transcript_event: TranscriptEvent) -> None:
        """Keep the best alternative of every final result."""
        for result in transcript_event.transcript.results:
            if not result.is_partial and result.alternatives:
                self.segments.append(result.alternatives[0].transcript)

    @property
    def text(self) -> str:
        return " ".join(s.strip() for s in self.segments if s.strip())


class TranscribeService:
    """Transcribes a local video by streaming its audio to Amazon Transcribe."""

    def __init__(
        self,
        region: str = "eu-west-1",
        language_code: str = "en-US",
        client: TranscribeStreamingClient | None = None,
        sample_rate: int = 16000,
        chunk_size: int = 4096,
    ) -> None:
        # The client will automatically use AWS_PROFILE from the environment
        self.client = client or TranscribeStreamingClient(region=region)
        self.language_code = language_code
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size

    def ffmpeg_args(self, path: str) -> list[str]:
        """Convert any input to PCM 16bit mono at the streaming sample rate."""
        return [
            "ffmpeg",
            "-nostdin",
            "-i",
            path,
            "-vn",
            "-f",
            "s16le",
            "-acodec",
            "pcm_s16le",
            "-ar",
            str(self.sample_rate),
            "-ac",
            "1",
            "-",
        ]

    async def transcribe(self, artifact: MediaArtifact) -> Transcript:
        try:
            text = await self._stream_file(artifact.path)
        except TranscriptionServiceError:
            raise
        except Exception as exc:
            raise TranscriptionServiceError(f"Amazon Transcribe failed: {exc}", cause=exc) from exc
        logger.info("Transcribed %s (%d characters)", artifact.path, len(text))
        return Transcript(text=text)

    async def _stream_file(self, path: str) -> str:
        proc = await asyncio.create_subprocess_exec(
            *self.ffmpeg_args(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            stream = await self.client.start_stream_transcription(
                language_code=self.language_code,
                media_sample_rate_hz=self.sample_rate,
                media_encoding="pcm",
            )
            handler = FinalTranscriptHandler(stream.output_stream)

            async def send_audio():
                while True:
                    chunk = await proc.stdout.read(self.chunk_size)
                    if not chunk:
                        break
                    await stream.input_stream.send_audio_event(audio_chunk=chunk)
                await stream.input_stream.end_stream()
                returncode = await proc.wait()
                if returncode != 0:
                    raise TranscriptionServiceError(f"ffmpeg exited with status {returncode} for {path}")

            # Send and receive in parallel
            receiving = asyncio.ensure_future(handler.handle_events())
            try:
                await send_audio()
                await receiving
            finally:
                # No-op once finished; otherwise stop the receiver and collect it
                receiving.cancel()
                await asyncio.gather(receiving, return_exceptions=True)
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
        return handler.text


class WhisperTranscribeService:
    """Transcribes a local video with the OpenAI audio transcription endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str = "whisper-1") -> None:
        self.client = client
        self.model = model

    async def transcribe(self, artifact: MediaArtifact) -> Transcript:
        try:
            with open(artifact.path, "rb") as f:
                response = await self.client.audio.transcriptions.create(file=f, model=self.model)
        except (OpenAIError, OSError) as exc:
            raise TranscriptionServiceError(f"Whisper transcription failed: {exc}", cause=exc) from exc
        logger.info("Transcribed %s (%d characters)", artifact.path, len(response.text))
        return Transcript(text=response.text)
