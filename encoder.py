import asyncio
import base64
import io
import logging

from PIL import Image

from failures import InvalidInputError
from models import ImageRecord

logger = logging.getLogger(__name__)

NOT_AN_IMAGE = "Please upload an image file"


def to_data_url(data, mime_type):
    b64 = base64.b64encode(data).decode("utf-8")
    return f"data:{mime_type};base64,{b64}"


def split_data_url(data_url):
    """Return (mime_type, base64 payload) for a `data:` URI."""
    try:
        header, b64 = data_url.split(",", 1)
        mime = header.split(":")[1].split(";")[0]
    except (AttributeError, IndexError, ValueError):
        raise InvalidInputError("Invalid image data")
    return mime, b64


def decode_data_url(data_url):
    _mime, b64 = split_data_url(data_url)
    try:
        return base64.b64decode(b64, validate=True)
    except ValueError:
        raise InvalidInputError("Invalid image data")


def _declared_type(upload):
    return getattr(upload, "content_type", None) or getattr(upload, "mimetype", None) or ""


def _pillow_mime_types():
    Image.init()
    return set(Image.MIME.values())


def _check_decodable(data, mime_type):
    """Reject empty files, and corrupt files of a type Pillow can read.

    Types Pillow has no codec for, such as HEIC, are
    passed through on their declared type alone.
    """
    if not data:
        raise InvalidInputError("The uploaded file is empty")
    if mime_type not in _pillow_mime_types():
        return
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except Exception as e:
        raise InvalidInputError(NOT_AN_IMAGE) from e


async def read_image(upload, on_loaded=None):
    """Read an uploaded file into an ImageRecord.

    The declared content type is checked before anything is read. The read
    itself runs in a worker thread so the event loop stays free. `on_loaded`
    receives the record exactly once, after the whole file has been read.
    """
    mime_type = _declared_type(upload).split(";")[0].strip().lower()
    if not mime_type.startswith("image/"):
        raise InvalidInputError(NOT_AN_IMAGE)

    data = await asyncio.to_thread(upload.read)
    _check_decodable(data, mime_type)

    data_url = to_data_url(data, mime_type)
    record = ImageRecord.from_data_url(data_url)
    logger.info("Loaded %s image (%d bytes)", mime_type, len(data))

    if on_loaded is not None:
        on_loaded(record)
    return record
