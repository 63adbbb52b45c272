import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from scene_analyzer.errors import TranscriptionServiceError
from scene_analyzer.models import MediaArtifact, Origin
from scene_analyzer.transcribe_service import FinalTranscriptHandler, TranscribeService, WhisperTranscribeService


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _result(text: str, partial: bool = False):
    return SimpleNamespace(is_partial=partial, alternatives=[SimpleNamespace(transcript=text)])


def _event(*results):
    return SimpleNamespace(transcript=SimpleNamespace(results=list(results)))


def _artifact(path) -> MediaArtifact:
    return MediaArtifact(path=str(path), size_bytes=4, origin=Origin.UPLOADED)


def _mock_stream():
    stream = MagicMock()
    stream.input_stream.send_audio_event = AsyncMock()
    stream.input_stream.end_stream = AsyncMock()
    return stream


def _mock_proc(chunks, returncode=0):
    proc = MagicMock()
    proc.stdout.read = AsyncMock(side_effect=chunks)
    proc.wait = AsyncMock(return_value=returncode)
    proc.returncode = returncode
    return proc


async def _hello_world_events(self):
    """Stand-in for the AWS event loop: one event with final and partial results."""
    await self.handle_transcript_event(_event(_result("Hello,"), _result("Hel", partial=True), _result(" world. ")))


# ---------------------------------------------------------------------------
# FinalTranscriptHandler
# ---------------------------------------------------------------------------

class TestFinalTranscriptHandler:
    @pytest.mark.asyncio
    async def test_partial_results_are_ignored(self):
        handler = FinalTranscriptHandler(MagicMock())

        await handler.handle_transcript_event(_event(_result("draft", partial=True), _result("final")))

        assert handler.segments == ["final"]

    @pytest.mark.asyncio
    async def test_results_without_alternatives_are_skipped(self):
        handler = FinalTranscriptHandler(MagicMock())
        empty = SimpleNamespace(is_partial=False, alternatives=[])

        await handler.handle_transcript_event(_event(empty, _result("kept")))

        assert handler.text == "kept"


# ---------------------------------------------------------------------------
# TranscribeService (Amazon Transcribe)
# ---------------------------------------------------------------------------

class TestTranscribeService:
    @pytest.mark.asyncio
    async def test_streams_pcm_and_joins_final_segments(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"fake")
        stream = _mock_stream()
        client = MagicMock()
        client.start_stream_transcription = AsyncMock(return_value=stream)
        proc = _mock_proc([b"\x00\x01" * 512, b""])

        with patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec, \
             patch.object(FinalTranscriptHandler, "handle_events", _hello_world_events):
            transcript = await TranscribeService(client=client).transcribe(_artifact(video))

        assert transcript.text == "Hello, world."
        stream.input_stream.send_audio_event.assert_awaited_once_with(audio_chunk=b"\x00\x01" * 512)
        stream.input_stream.end_stream.assert_awaited_once()
        assert video.exists()

        args = mock_exec.call_args[0]
        assert "ffmpeg" in args
        assert str(video) in args
        assert "s16le" in args
        assert "16000" in args

    @pytest.mark.asyncio
    async def test_language_and_rate_are_passed_to_aws(self, tmp_path):
        client = MagicMock()
        client.start_stream_transcription = AsyncMock(return_value=_mock_stream())

        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc([b""])), \
             patch.object(FinalTranscriptHandler, "handle_events", _hello_world_events):
            await TranscribeService(client=client, language_code="it-IT").transcribe(_artifact(tmp_path / "a.mp4"))

        client.start_stream_transcription.assert_awaited_once_with(
            language_code="it-IT", media_sample_rate_hz=16000, media_encoding="pcm"
        )

    @pytest.mark.asyncio
    async def test_engine_error_is_wrapped(self, tmp_path):
        cause = RuntimeError("LimitExceededException")
        client = MagicMock()
        client.start_stream_transcription = AsyncMock(side_effect=cause)

        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc([b""])):
            with pytest.raises(TranscriptionServiceError) as exc_info:
                await TranscribeService(client=client).transcribe(_artifact(tmp_path / "a.mp4"))

        assert exc_info.value.cause is cause
        assert exc_info.value.stage == "transcribing"

    @pytest.mark.asyncio
    async def test_ffmpeg_failure_is_an_error(self, tmp_path):
        client = MagicMock()
        client.start_stream_transcription = AsyncMock(return_value=_mock_stream())

        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc([b""], returncode=1)), \
             patch.object(FinalTranscriptHandler, "handle_events", _hello_world_events):
            with pytest.raises(TranscriptionServiceError, match="ffmpeg exited with status 1"):
                await TranscribeService(client=client).transcribe(_artifact(tmp_path / "a.mp4"))

    @pytest.mark.asyncio
    async def test_ffmpeg_failure_cancels_the_receiver(self, tmp_path):
        cancelled = []

        async def wait_forever(self):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        client = MagicMock()
        client.start_stream_transcription = AsyncMock(return_value=_mock_stream())

        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc([b""], returncode=1)), \
             patch.object(FinalTranscriptHandler, "handle_events", wait_forever):
            with pytest.raises(TranscriptionServiceError, match="ffmpeg exited"):
                await TranscribeService(client=client).transcribe(_artifact(tmp_path / "a.mp4"))

        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_missing_ffmpeg_is_wrapped(self, tmp_path):
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(TranscriptionServiceError):
                await TranscribeService(client=MagicMock()).transcribe(_artifact(tmp_path / "a.mp4"))


# ---------------------------------------------------------------------------
# WhisperTranscribeService (OpenAI)
# ---------------------------------------------------------------------------

class TestWhisperTranscribeService:
    @pytest.mark.asyncio
    async def test_returns_transcript_text(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"fake")
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text="Hello, world."))

        transcript = await WhisperTranscribeService(client).transcribe(_artifact(video))

        assert transcript.text == "Hello, world."
        assert client.audio.transcriptions.create.call_args.kwargs["model"] == "whisper-1"
        assert video.exists()

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"fake")
        cause = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/audio"))
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(side_effect=cause)

        with pytest.raises(TranscriptionServiceError) as exc_info:
            await WhisperTranscribeService(client).transcribe(_artifact(video))

        assert exc_info.value.cause is cause
