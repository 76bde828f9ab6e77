"""
Transfer Errors

Every failure a session can hit maps to one of these. The message prefix
names the category so the log line alone tells an operator what went wrong.
"""


class TransferError(Exception):
    """Base class for all transfer failures."""
    category = 'transfer error'

    def __init__(self, message: str = ''):
        self.detail = message
        super().__init__(f"{self.category}: {message}" if message else self.category)


class MalformedFrameError(TransferError):
    """Header line does not split into a path and a length."""
    category = 'invalid metadata'


class InvalidLengthError(MalformedFrameError):
    """Length field is not a base-10 non-negative integer."""
    category = 'invalid length'


class PathTraversalError(MalformedFrameError):
    """Relative path resolves outside the output root."""
    category = 'path traversal'


class TransferIOError(TransferError):
    """Local filesystem failure (mkdir, open, read, write)."""
    category = 'i/o error'


class ShortPayloadError(TransferError):
    """Stream closed before the declared payload length arrived."""
    category = 'short payload'

    def __init__(self, path: str, expected: int, received: int):
        self.path = path
        self.expected = expected
        self.received = received
        super().__init__(f"{path}: expected {expected} bytes, got {received}")


class ConnectionFailedError(TransferError):
    """Could not dial the peer or bind the listener."""
    category = 'connection failed'
