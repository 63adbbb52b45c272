"""Scene metadata extraction from a transcript through an OpenAI chat model."""

import json
import logging
import re

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from .errors import AnnotationServiceError, MetadataParseError
from .models import SceneMetadata, Transcript

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a scene analysis engine. Given a transcript, return JSON with:
- title
- season
- episode
- characters
- timestamp
- description (a short scene description)
Answer with the JSON object only."""

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_metadata(raw_text: str, transcript: Transcript | None = None) -> SceneMetadata:
    """Parse the model's answer. Any JSON object is accepted, anything else is not.

    Known fields with an unexpected shape are dropped with a warning rather
    than failing the request.
    """
    text = (raw_text or "").strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MetadataParseError(raw_text, transcript, reason=f"invalid JSON ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise MetadataParseError(raw_text, transcript, reason=f"expected an object, got {type(data).__name__}")

    try:
        return SceneMetadata.model_validate(data)
    except ValidationError as exc:
        invalid = {error["loc"][0] for error in exc.errors() if error["loc"]}
    logger.warning("Dropping scene metadata fields with unexpected shape: %s", ", ".join(sorted(map(str, invalid))))
    return SceneMetadata.model_validate({key: value for key, value in data.items() if key not in invalid})


class AnnotationService:
    """Asks the language model for scene metadata describing a transcript."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4") -> None:
        self.client = client
        self.model = model

    async def annotate(self, transcript: Transcript) -> SceneMetadata:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": transcript.text},
                ],
            )
        except OpenAIError as exc:
            raise AnnotationServiceError(f"Scene annotation failed: {exc}", cause=exc) from exc

        if not completion.choices:
            raise AnnotationServiceError("Scene annotation returned no choices")
        raw_text = completion.choices[0].message.content or ""
        metadata = parse_metadata(raw_text, transcript)
        logger.info("Annotated transcript as %r", metadata.title)
        return metadata
