"""Exception types for agent_stream."""


class StreamError(Exception):
    """Base class for errors raised by agent_stream."""


class ChunkParseError(StreamError):
    """Raised when a raw chunk cannot be turned into a typed chunk.

    Attributes:
        raw: The offending raw value.
    """

    def __init__(self, message: str, raw: object = None):
        self.raw = raw
        super().__init__(message)
