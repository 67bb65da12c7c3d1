"""Error taxonomy for the media pipeline.

Only :class:`TransportError` and :class:`TooLargeError` are fatal to an
attachment; the tool-stage errors are caught where the stage is invoked
and the pipeline carries on with what it already has.
"""

from __future__ import annotations


class MediaError(Exception):
    """Base exception for media pipeline errors."""


class TransportError(MediaError):
    """Raised when the remote fetch fails (connection, timeout, HTTP status)."""


class TooLargeError(MediaError):
    """Raised when a download exceeds the byte budget.

    ``source`` is ``"declared"`` when the Content-Length header alone
    exceeded the budget, or ``"streamed"`` when the running byte count did.
    """

    def __init__(self, source: str, size: int, limit: int) -> None:
        super().__init__(f"File too large ({source}): {size} bytes exceeds limit of {limit}")
        self.source = source
        self.size = size
        self.limit = limit


class ProcessError(MediaError):
    """Raised when an external tool cannot be run to a clean exit.

    ``phase`` is one of ``spawn``, ``write``, ``read`` or ``wait``.
    """

    def __init__(self, tool: str, phase: str, cause: str, stderr: str = "") -> None:
        message = f"{tool} failed during {phase}: {cause}"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)
        self.tool = tool
        self.phase = phase
        self.cause = cause
        self.stderr = stderr

    @property
    def timed_out(self) -> bool:
        return self.cause == "timeout"


class ProbeError(MediaError):
    """Raised when dimensions cannot be extracted from media bytes."""


class ThumbnailError(MediaError):
    """Raised when no thumbnail frame could be rendered."""


class RemuxError(MediaError):
    """Raised when both the stream-copy and the reencode stage failed."""


class EncodeError(MediaError):
    """Raised when thumbnail bytes do not decode as a still image."""


class NamingError(MediaError):
    """Raised when no filename can be derived (the fallbacks make this unreachable)."""
