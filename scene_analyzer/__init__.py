"""
Scene analyzer app built with FastAPI, exposing
- a scene endpoint accepting either an uploaded video or a video URL,
- audio transcription through Amazon Transcribe (or OpenAI Whisper),
- and scene metadata extraction from the transcript through an OpenAI chat model.
"""

__version__ = "0.2.0"
