import sys
import os

import pytest

# Ensure the project root is in sys.path so `import scene_analyzer` works
# without an editable install
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from scene_analyzer.annotation_service import parse_metadata  # noqa: E402
from scene_analyzer.models import Transcript  # noqa: E402
from scene_analyzer.storage import TempStorage  # noqa: E402

PILOT_JSON = (
    '{"title":"Pilot","season":1,"episode":1,"characters":["Alice"],'
    '"timestamp":"00:01:00","description":"Intro"}'
)


class FakeTranscriber:
    """Deterministic transcriber that checks the artifact is still on disk."""

    def __init__(self, text: str = "Hello, world.", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls = []

    async def transcribe(self, artifact):
        self.calls.append(artifact)
        assert os.path.exists(artifact.path)
        if self.error is not None:
            raise self.error
        return Transcript(text=self.text)


class FakeAnnotator:
    """Returns a canned model answer, parsed the same way the real client does."""

    def __init__(self, raw_text: str = PILOT_JSON, error: Exception | None = None) -> None:
        self.raw_text = raw_text
        self.error = error
        self.calls = []

    async def annotate(self, transcript):
        self.calls.append(transcript)
        if self.error is not None:
            raise self.error
        return parse_metadata(self.raw_text, transcript)


@pytest.fixture
def storage(tmp_path):
    return TempStorage(str(tmp_path / "scratch"))


@pytest.fixture
def upload(tmp_path):
    """A 1,000 byte video as delivered by the form handler."""
    path = tmp_path / "upload.mp4"
    path.write_bytes(b"\x00" * 1000)
    return str(path)
