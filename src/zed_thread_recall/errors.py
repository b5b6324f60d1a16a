"""
Exceptions raised by Zed Thread Recall.

Engine failures (decompression, decoding) are scoped to a single archive
record; batch operations catch them and carry on with the next record.
"""


class ThreadRecallError(Exception):
    """Base exception for all Zed Thread Recall errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DecompressionError(ThreadRecallError):
    """Raised when a compressed blob cannot be turned back into bytes."""


class CorruptStreamError(DecompressionError):
    """The codec reported impossible progress, stalled, or the frame was truncated."""


class BufferLimitExceededError(DecompressionError):
    """Growing the output buffer would exceed the configured output limit."""

    def __init__(self, requested: int, limit: int):
        super().__init__(
            f"Decompressed output would need {requested} bytes (limit {limit})",
            {"requested": requested, "limit": limit},
        )
        self.requested = requested
        self.limit = limit


class TooManyIterationsError(DecompressionError):
    """The streaming loop hit its iteration bound before the frame ended."""

    def __init__(self, iterations: int):
        super().__init__(
            f"Decompression did not finish within {iterations} iterations",
            {"iterations": iterations},
        )
        self.iterations = iterations


class CodecError(DecompressionError):
    """The underlying zstd codec rejected the input."""


class DecodeError(ThreadRecallError):
    """Raised when decompressed bytes are not a valid thread document."""


class MalformedDocumentError(DecodeError):
    """Invalid JSON, or a required field is missing or has the wrong type."""


class UnrecognizedMessageTagError(DecodeError):
    """A message object is neither ``{"User": ...}`` nor ``{"Agent": ...}``."""

    def __init__(self, tags: list[str]):
        super().__init__(
            f"Message must contain either 'User' or 'Agent' key, got {tags}",
            {"tags": tags},
        )
        self.tags = tags


class NotFoundError(ThreadRecallError):
    """Raised when no archive record exists for a requested id."""

    def __init__(self, thread_id: str):
        super().__init__(f"No thread found matching id {thread_id}", {"thread_id": thread_id})
        self.thread_id = thread_id


class InvalidParameterError(ThreadRecallError):
    """Raised when a caller-supplied parameter is missing or out of range."""

    def __init__(self, message: str, field: str | None = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class ArchiveUnavailableError(ThreadRecallError):
    """Raised when the threads database cannot be opened."""

    def __init__(self, path: str, cause: Exception | None = None):
        details = {"path": path}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Threads database unavailable: {path}", details)
        self.path = path
        self.cause = cause
