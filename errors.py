"""Error taxonomy shared by the request handlers.

Every failure a handler reports to the client is one of three kinds. The
kind is mapped to an HTTP status code in exactly one place
(``status_for``), and ``main`` turns any ``ChatAppError`` into a
``{"error": message}`` JSON body.
"""
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UPSTREAM = "upstream"
    PERSISTENCE = "persistence"


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UPSTREAM: 500,
    ErrorKind.PERSISTENCE: 500,
}


def status_for(kind: ErrorKind) -> int:
    return STATUS_BY_KIND.get(kind, 500)


class ChatAppError(Exception):
    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return status_for(self.kind)


class ValidationError(ChatAppError):
    """Missing or malformed client input."""

    kind = ErrorKind.VALIDATION


class UpstreamError(ChatAppError):
    """An external service (LLM, storage, URL fetch) failed."""

    kind = ErrorKind.UPSTREAM


class PersistenceError(ChatAppError):
    """A database read or write failed."""

    kind = ErrorKind.PERSISTENCE
