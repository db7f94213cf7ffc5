"""Editing session state machine.

idle -> ready_to_edit -> processing -> completed | failed, and back to idle
on reset. Each submit and each reset takes a new request token; a generation
result is applied only while its token is still current, so a reply that
arrives after a reset or a newer submit is dropped.
"""

import logging
import threading

from failures import EditorError, EmptyResultError, InvalidInputError, TransportError
from models import SessionState

logger = logging.getLogger(__name__)

FALLBACK_ERROR = "Failed to generate image. Please try again."
NO_IMAGE_ERROR = "No image was returned from the model. Try a different prompt."

EDITABLE_STATES = (
    SessionState.READY_TO_EDIT,
    SessionState.COMPLETED,
    SessionState.FAILED,
)


class EditSession:
    def __init__(self, editor):
        self._editor = editor
        self._lock = threading.Lock()
        self._token = 0
        self._clear()

    def _clear(self):
        self.state = SessionState.IDLE
        self.image = None
        self.prompt = ""
        self.outcome = None
        self.error = None
        self.note = None

    def load_image(self, image):
        with self._lock:
            if self.state is not SessionState.IDLE:
                return False
            self.image = image
            self.outcome = None
            self.error = None
            self.note = None
            self.state = SessionState.READY_TO_EDIT
            return True

    def set_prompt(self, text):
        if text is not None and not isinstance(text, str):
            raise InvalidInputError("Prompt must be text")
        with self._lock:
            if self.state not in EDITABLE_STATES:
                return False
            self.prompt = text or ""
            return True

    def can_submit(self):
        return (
            self.state in EDITABLE_STATES
            and self.image is not None
            and bool(self.prompt.strip())
        )

    async def submit(self, prompt=None):
        """Run one generation request. Returns False if nothing was sent."""
        if prompt is not None:
            self.set_prompt(prompt)

        with self._lock:
            if not self.can_submit():
                return False
            self._token += 1
            token = self._token
            image, text = self.image, self.prompt
            self.state = SessionState.PROCESSING
            self.error = None
            self.outcome = None
            self.note = None

        try:
            outcome = await self._editor.generate(image, text)
        except EditorError as e:
            self._fail(token, e)
            return True
        except Exception as e:
            logger.exception("Generation failed")
            self._fail(token, TransportError(str(e)))
            return True

        if not outcome.has_image:
            self._fail(token, EmptyResultError(NO_IMAGE_ERROR), note=outcome.note)
        else:
            self._complete(token, outcome)
        return True

    def _is_current(self, token):
        if token != self._token or self.state is not SessionState.PROCESSING:
            logger.debug("Dropping stale result for request %d", token)
            return False
        return True

    def _complete(self, token, outcome):
        with self._lock:
            if not self._is_current(token):
                return
            self.outcome = outcome
            self.note = outcome.note
            self.state = SessionState.COMPLETED

    def _fail(self, token, error, note=None):
        with self._lock:
            if not self._is_current(token):
                return
            if not error.message:
                error = type(error)(FALLBACK_ERROR, kind=error.kind)
            self.error = error
            self.note = note
            self.state = SessionState.FAILED

    def reset(self):
        with self._lock:
            self._token += 1
            self._clear()

    def snapshot(self):
        with self._lock:
            return {
                "state": self.state.value,
                "busy": self.state.busy,
                "image": self.image.to_dict() if self.image else None,
                "prompt": self.prompt,
                "result": self.outcome.to_dict() if self.outcome else None,
                "note": self.note,
                "error": self.error.to_dict() if self.error else None,
                "can_submit": self.can_submit(),
            }
