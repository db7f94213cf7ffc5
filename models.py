import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from failures import InvalidInputError

RESULT_MIME_TYPE = "image/png"


class SessionState(str, Enum):
    IDLE = "idle"
    READY_TO_EDIT = "ready_to_edit"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def busy(self):
        return self is SessionState.PROCESSING


@dataclass(frozen=True)
class ImageRecord:
    """An uploaded image: the bare base64 payload plus its full data URI."""

    base64: str
    mime_type: str
    data_url: str

    def __post_init__(self):
        if not self.mime_type.startswith("image/"):
            raise InvalidInputError(f"Unsupported media type: {self.mime_type}")

    @classmethod
    def from_data_url(cls, data_url):
        header, _, payload = data_url.partition(",")
        if not header.startswith("data:") or ";base64" not in header:
            raise InvalidInputError("Invalid image data")
        mime_type = header[len("data:"):].split(";")[0]
        return cls(base64=payload, mime_type=mime_type, data_url=data_url)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str):
        b64 = base64.b64encode(data).decode("utf-8")
        return cls.from_data_url(f"data:{mime_type};base64,{b64}")

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.base64)

    def to_dict(self):
        return {"mime_type": self.mime_type, "data_url": self.data_url}


@dataclass(frozen=True)
class GenerationOutcome:
    image_url: Optional[str] = None
    note: Optional[str] = None

    @property
    def has_image(self):
        return bool(self.image_url)

    def to_dict(self):
        return {"image_url": self.image_url, "note": self.note}
