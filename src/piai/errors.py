from piai.message import StopReason


class PiAIError(Exception):
    """Base class for every error raised by piai."""


class ConfigError(PiAIError):
    """Configuration is missing or invalid."""


class ProviderNotFoundError(PiAIError, LookupError):
    pass


class ModelNotFoundError(PiAIError, LookupError):
    pass


class StreamError(PiAIError):
    """A stream ended without producing a final message.

    Args:
        message: Human readable description.
        stop_reason: Why generation ended, ``ERROR`` or ``ABORTED``.
    """

    stop_reason: StopReason = StopReason.ERROR

    def __init__(self, message: str, stop_reason: StopReason | None = None):
        super().__init__(message)
        if stop_reason is not None:
            self.stop_reason = stop_reason


class SourceError(StreamError):
    """The backend or its transport failed mid-stream.

    The underlying exception is chained as ``__cause__``.
    """

    stop_reason = StopReason.ERROR


class StreamCancelledError(StreamError):
    """The caller cancelled the stream or its deadline expired."""

    stop_reason = StopReason.ABORTED
