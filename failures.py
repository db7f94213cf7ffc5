from enum import Enum


class FailureKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    EMPTY_RESULT = "empty_result"
    TRANSPORT = "transport"
    AUTH = "auth"
    QUOTA = "quota"


class EditorError(Exception):
    """Base failure carrying a user-facing message and a kind to branch on."""

    kind = FailureKind.TRANSPORT

    def __init__(self, message="", kind=None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = FailureKind(kind)

    def __str__(self):
        return self.message

    def to_dict(self):
        return {"kind": self.kind.value, "message": self.message}


class InvalidInputError(EditorError):
    kind = FailureKind.INVALID_INPUT


class EmptyResultError(EditorError):
    kind = FailureKind.EMPTY_RESULT


class TransportError(EditorError):
    kind = FailureKind.TRANSPORT


def kind_for_status(code):
    """Map an HTTP status code from the API to a failure kind."""
    if code in (401, 403):
        return FailureKind.AUTH
    if code == 429:
        return FailureKind.QUOTA
    return FailureKind.TRANSPORT
