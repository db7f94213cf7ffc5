import base64
import logging

from google import genai
from google.genai import errors, types
from google.genai.types import Modality

from failures import InvalidInputError, TransportError, kind_for_status
from models import RESULT_MIME_TYPE, GenerationOutcome

logger = logging.getLogger(__name__)

MODEL_NAME = "gemini-2.5-flash-image"


def make_client(api_key, timeout_ms=300_000):
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=timeout_ms),
    )


def build_contents(image, prompt):
    return [
        types.Part.from_bytes(data=image.raw_bytes(), mime_type=image.mime_type),
        types.Part.from_text(text=prompt),
    ]


def parse_response(response):
    """Pull the edited image and any note out of the first candidate.

    Parts are walked in order and the last image and last text win. The
    output is always labelled PNG because parts do not reliably carry a
    usable mime type.
    """
    image_url = None
    note = None

    candidates = getattr(response, "candidates", None) or []
    content = candidates[0].content if candidates else None
    parts = (content.parts if content else None) or []

    for part in parts:
        if part.inline_data and part.inline_data.data:
            b64 = base64.b64encode(part.inline_data.data).decode("utf-8")
            image_url = f"data:{RESULT_MIME_TYPE};base64,{b64}"
        elif part.text:
            note = part.text

    return GenerationOutcome(image_url=image_url, note=note)


class GeminiImageEditor:
    """Sends one image plus an instruction to Gemini and reads back the edit."""

    def __init__(self, client, model=MODEL_NAME):
        self._client = client
        self.model = model

    async def generate(self, image, prompt):
        if not prompt or not prompt.strip():
            raise InvalidInputError("Prompt cannot be empty")

        config = types.GenerateContentConfig(
            response_modalities=[Modality.TEXT, Modality.IMAGE],
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=build_contents(image, prompt),
                config=config,
            )
        except errors.APIError as e:
            logger.warning("Gemini API error %s: %s", e.code, e.message)
            raise TransportError(e.message or str(e), kind=kind_for_status(e.code)) from e
        except Exception as e:
            logger.exception("Error calling Gemini API")
            raise TransportError(str(e)) from e

        outcome = parse_response(response)
        logger.info(
            "Gemini returned image=%s note=%s",
            outcome.has_image, outcome.note is not None,
        )
        return outcome
