from __future__ import annotations
from typing import Optional


class DocsChatError(Exception):
    """Base error. ``status_code`` is used when the error reaches the HTTP layer."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CatalogConfigError(DocsChatError):
    pass


class InvalidSelectionError(DocsChatError):
    status_code = 400

    def __init__(self, message: str = "Invalid provider or model combination") -> None:
        super().__init__(message)


class EmptyMessageError(DocsChatError):
    status_code = 400

    def __init__(self, message: str = "Message is required") -> None:
        super().__init__(message)


class DispatchInProgressError(DocsChatError):
    status_code = 409

    def __init__(self, message: str = "A request is already in flight") -> None:
        super().__init__(message)


class RequestFailedError(DocsChatError):
    """The chat endpoint answered with a non-success status."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class StreamProtocolError(DocsChatError):
    """An ``error`` record arrived inside an otherwise successful stream."""

    status_code = 502


class ProviderError(DocsChatError):
    """Upstream provider call failed after retries."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status
