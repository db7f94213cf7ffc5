import asyncio
import io
from types import SimpleNamespace

import pytest
from PIL import Image
from google.genai import types

from models import GenerationOutcome, ImageRecord


def make_image_bytes(fmt="JPEG", size=(64, 64), color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class FakeUpload:
    """Stands in for a Werkzeug FileStorage."""

    def __init__(self, data, content_type):
        self._data = data
        self.content_type = content_type
        self.reads = 0

    def read(self):
        self.reads += 1
        return self._data


class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def fake_genai_client(response=None, error=None):
    models = FakeModels(response=response, error=error)
    return SimpleNamespace(aio=SimpleNamespace(models=models)), models


def gemini_response(*parts):
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


class StubEditor:
    """Editor whose result is decided by the test.

    With `gate` set, generate() waits for the event before answering, so a
    test can act while a request is still in flight.
    """

    def __init__(self, outcome=None, error=None, gate=None):
        self.outcome = outcome
        self.error = error
        self.gate = gate
        self.calls = []

    async def generate(self, image, prompt):
        self.calls.append((image, prompt))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.outcome


PNG_RESULT = GenerationOutcome(image_url="data:image/png;base64,iVBORw0KGgo=")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG", size=(120, 90))


@pytest.fixture
def jpeg_record(jpeg_bytes):
    return ImageRecord.from_bytes(jpeg_bytes, "image/jpeg")


@pytest.fixture
def run():
    return asyncio.run
