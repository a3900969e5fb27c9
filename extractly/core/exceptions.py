"""Error taxonomy shared by the extractors, the batch runner and the API.

Every error the service raises on purpose is an ``ExtractlyError``. The
``status_code`` decides the HTTP status at the handler boundary and
``message`` is the short, client-facing classification.
"""

from __future__ import annotations


class ExtractlyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ExtractlyError):
    """Missing or malformed input the caller can fix."""

    status_code = 400


class PayloadTooLargeError(ExtractlyError):
    status_code = 413

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__("Payload too large")


class FetchError(ExtractlyError):
    """Raised when a static fetch fails for good.

    ``status`` is None for network failures (DNS, connect, timeout,
    redirect overflow) and the HTTP status otherwise.
    """

    def __init__(self, url: str, status: int | None = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        if status is None:
            message = f"FetchError {reason}".strip()
        else:
            message = f"FetchError {status} {reason}".strip()
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status == 503


class ExtractionError(ExtractlyError):
    """Unparseable markup or a selector/expression the engine rejects."""


class BrowserError(ExtractlyError):
    """Browser launch, navigation or live-DOM evaluation failure."""


class BrowserSlotTimeoutError(BrowserError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"No browser slots available after {timeout:.0f}s")


class UnknownTaskTypeError(ExtractlyError):
    status_code = 400

    def __init__(self, task_type: object = None):
        self.task_type = task_type
        super().__init__("Unknown task type")


def format_error(exc: BaseException) -> str:
    """Short classified message for error bodies and batch records."""
    if isinstance(exc, ExtractlyError):
        return exc.message
    try:
        text = str(exc)
    except Exception:
        text = ""
    return text or type(exc).__name__
